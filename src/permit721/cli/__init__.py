"""Command-line tools for preparing permits off-line."""
