"""Shell command providers."""
