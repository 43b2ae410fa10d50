from . import health, weekly_quest

__all__ = ["health", "weekly_quest"]
