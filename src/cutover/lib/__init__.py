"""Shared library code for Cutover: errors and logging."""
