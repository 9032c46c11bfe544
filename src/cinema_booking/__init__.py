"""Seat reservation, hold expiry and payment confirmation for cinema sessions."""

__version__ = "1.0.0"
