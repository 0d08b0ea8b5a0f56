"""Promoworker: queue-driven YouTube to Facebook Page republishing worker."""

__version__ = "0.1.0"
