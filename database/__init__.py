# ScopeGuard database
from .models import Base, User, SubIndicator, AcademicYear, Evidence, Evaluation
from .database import get_db, init_db, close_db

__all__ = [
    "Base",
    "User",
    "SubIndicator",
    "AcademicYear",
    "Evidence",
    "Evaluation",
    "get_db",
    "init_db",
    "close_db",
]
