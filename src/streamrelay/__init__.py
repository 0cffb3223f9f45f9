"""Relay Discord channel chat into Streamplace chat."""

__version__ = "0.1.0"
