"""CLI sub-command groups registered by ``infraplane.main``."""
