"""Build result store and event-driven update engine for compiler regression runs."""

__version__ = "0.1.0"
