"""Mirror the contents of one object container into another."""

__version__ = "0.1.0"
