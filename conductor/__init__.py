"""Conductor - plans, dispatches and composes replies for natural-language requests."""
__version__ = "0.1.0"
