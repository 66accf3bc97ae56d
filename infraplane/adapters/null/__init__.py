"""Null provider: declared-state-only resources."""
