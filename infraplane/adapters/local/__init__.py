"""Local filesystem providers."""
