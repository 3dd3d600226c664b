"""Core package for the roster verification bot.

This module exposes the configuration store, staging area, user database and
verification engine so that consumers of the package can simply import them
from ``roster_bot``. The Discord front end lives in :mod:`roster_bot.bot`.
"""

from .core.config_store import ConfigStore
from .core.staging import StagingArea
from .core.user_database import TrackedUser, UserDatabase
from .core.verification import VerificationEngine, VerificationResult

__all__ = [
    "ConfigStore",
    "StagingArea",
    "TrackedUser",
    "UserDatabase",
    "VerificationEngine",
    "VerificationResult",
]
