"""Guaranteed-message receiver with explicit settlement outcomes."""

__version__ = "0.1.0"
