from .manual_trigger import ManualTrigger
from .interval_trigger import IntervalTrigger

__all__ = ["ManualTrigger", "IntervalTrigger"]
