"""Questline: weekly quest progression and streak engine."""

__version__ = "1.0.0"
