"""Domain package: entities, schedule, errors and persistence rows."""

from . import entities, errors, models, schedule  # noqa: F401

__all__ = ["entities", "errors", "models", "schedule"]
