"""Database repository layer, one repo per aggregate root."""

from bolonyay.db.repositories.case_repo import CaseRepo
from bolonyay.db.repositories.session_repo import SessionRepo
from bolonyay.db.repositories.user_repo import UserRepo

__all__ = [
    "CaseRepo",
    "SessionRepo",
    "UserRepo",
]
