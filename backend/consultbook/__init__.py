"""Consultbook: consultation scheduling, session packages and bookings."""

__version__ = "1.0.0"
