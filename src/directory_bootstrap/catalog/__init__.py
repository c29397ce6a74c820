"""Desired state catalog package."""
