"""Shared types, errors, and serialization."""
