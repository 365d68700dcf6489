"""Durable single-writer job queue for long-running inference requests."""

__version__ = "0.1.0"
