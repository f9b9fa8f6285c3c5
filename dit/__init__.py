"""dit: track the time you spend working on tasks."""

__version__ = "0.1.0"
