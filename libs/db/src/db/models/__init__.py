"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the bank-sync models used by ``better_budget``.
"""

from .finance import Base, BbImportRun, BbTransaction

__all__ = [
    "Base",
    "BbImportRun",
    "BbTransaction",
]
