"""Off-line wallet helpers."""
