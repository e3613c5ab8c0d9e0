from app.models.base import Base
from app.models.override import AsoRulesetOverride

__all__ = [
    "Base",
    "AsoRulesetOverride",
]
