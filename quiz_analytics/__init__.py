"""Tracking + admin analytics backend for the diagnosis quiz site."""

__version__ = "0.3.0"
