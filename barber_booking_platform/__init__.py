"""Barber Booking Platform: appointment scheduling and booking lifecycle."""

__version__ = "1.0.0"
