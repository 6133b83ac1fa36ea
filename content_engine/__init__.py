"""AI job processing pipeline for the content engine."""

__version__ = "1.0.0"
