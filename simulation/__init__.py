"""Synthetic rig sessions for development and testing."""
