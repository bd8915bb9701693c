"""Codementor: AI code review sessions with live feedback and progress tracking."""

__version__ = "0.1.0"
