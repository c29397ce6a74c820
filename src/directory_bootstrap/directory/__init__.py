"""Directory backends."""
