"""Read-then-quiz gate for publishing, commenting and resharing sourced content."""

__version__ = "0.1.0"
