"""QueueFlow: doctor assignment and day-scoped queue numbering."""

__version__ = "1.0.0"
