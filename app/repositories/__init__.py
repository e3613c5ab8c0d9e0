"""Repository layer: all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only deals with raw override records and normalized rulesets.
"""

from app.repositories.override_repository import OverrideRepository

__all__ = [
    "OverrideRepository",
]
