# Routers package
from . import waitlist_router

__all__ = [
    "waitlist_router",
]
