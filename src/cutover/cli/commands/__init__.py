"""Click command groups registered on the ``cutover`` CLI."""
