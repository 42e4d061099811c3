"""Router package exports."""

from . import assignments, config, health, quiz, review, schedule, streaks

__all__ = [
    "assignments",
    "config",
    "health",
    "quiz",
    "review",
    "schedule",
    "streaks",
]
