"""Covenant compliance state and risk-entropy engine."""

__version__ = "0.1.0"
