"""Waitlist queue and offer-cascade service for doctor appointment slots."""

__version__ = "1.0.0"
