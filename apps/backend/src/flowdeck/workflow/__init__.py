"""Workflow definitions, run records, and their file-backed stores."""
