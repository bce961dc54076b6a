"""Offline-first synchronization layer for access events and diagnostics."""

__version__ = "0.1.0"
