"""Flowdeck: operator console backend for file-first workflow definitions and runs."""

__version__ = "0.1.0"
