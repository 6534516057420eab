from .waitlist import (
    WaitlistJoinRequest,
    WaitlistEntryResponse,
    WaitlistPageResponse,
    CascadeRequest,
    CascadeResponse,
    ConversionResponse,
    SweepResponse,
)

__all__ = [
    "WaitlistJoinRequest",
    "WaitlistEntryResponse",
    "WaitlistPageResponse",
    "CascadeRequest",
    "CascadeResponse",
    "ConversionResponse",
    "SweepResponse",
]
