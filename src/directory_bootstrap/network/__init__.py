"""Host network helpers."""
