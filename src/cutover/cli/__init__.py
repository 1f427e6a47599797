"""Command-line interface for Cutover."""
