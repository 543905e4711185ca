"""Sketch Brains - event registration and learning platform backend."""

__version__ = "1.0.0"
