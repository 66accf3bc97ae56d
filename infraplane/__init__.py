"""infraplane — dependency-ordered infrastructure applier and host bootstrap."""

__version__ = "0.1.0"
