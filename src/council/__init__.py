"""Council debate orchestration engine."""

__version__ = "3.1.0"
