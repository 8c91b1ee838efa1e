# ScopeGuard - policy objects (requester, scope, evidence resource, academic year)
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .filters import FilterPredicate


class Role(str, Enum):
    TEACHER = "TEACHER"
    IQA_EVALUATOR = "IQA_EVALUATOR"
    EQA_EVALUATOR = "EQA_EVALUATOR"
    EXECUTIVE = "EXECUTIVE"
    ADMIN = "ADMIN"


class Action(str, Enum):
    VIEW = "view"
    EVALUATE = "evaluate"
    MODIFY = "modify"
    UPLOAD = "upload"
    ASSIGN_SCOPE = "assign_scope"
    MANAGE_USERS = "manage_users"
    MANAGE_ACADEMIC_YEARS = "manage_academic_years"
    VIEW_AUDIT_LOG = "view_audit_log"


class DecisionReason(str, Enum):
    OK = "OK"
    INACTIVE_ACCOUNT = "INACTIVE_ACCOUNT"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    SCOPE_NOT_OWNED = "SCOPE_NOT_OWNED"
    YEAR_OUT_OF_RANGE = "YEAR_OUT_OF_RANGE"
    EVALUATION_WINDOW_CLOSED = "EVALUATION_WINDOW_CLOSED"
    UPLOAD_WINDOW_CLOSED = "UPLOAD_WINDOW_CLOSED"
    RESOURCE_DELETED = "RESOURCE_DELETED"


# --- Requester (resolved fresh from the session on every request) ---
class Requester(BaseModel):
    """Who is asking: account id, role, active flag and the scopes assigned to them."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="User id")
    role: Role
    is_active: bool = True
    owned_scope_ids: frozenset[str] = Field(default_factory=frozenset, description="Sub-indicators assigned to this user")


# --- Scope (sub-indicator) ---
class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str | None = None


# --- Resource (evidence metadata record) ---
class Resource(BaseModel):
    """An uploaded evidence item; belongs to exactly one scope and one academic year."""
    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str = Field(..., description="Uploader")
    scope_id: str
    academic_year_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: datetime | None = Field(default=None, description="Tombstone; set when soft-deleted")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class AcademicYear(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    start_year: int
    name: str = ""
    is_active: bool = True
    upload_window_open: bool = False
    evaluation_window_open: bool = False


class AcademicYearCatalog(BaseModel):
    """All academic years known to the institution."""
    model_config = ConfigDict(frozen=True)

    years: tuple[AcademicYear, ...] = ()

    def active_year(self) -> AcademicYear | None:
        # Several years may be flagged active; the most recent one is current.
        active = [y for y in self.years if y.is_active]
        if not active:
            return None
        return max(active, key=lambda y: y.start_year)

    def ids_between(self, low: int, high: int) -> list[str]:
        return [y.id for y in self.years if low <= y.start_year <= high]


class YearAccess(BaseModel):
    """One row of the historical-access listing for a requester."""
    year: AcademicYear
    accessible: bool
    reason: str | None = None


# --- Engine output (never persisted) ---
class AccessDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: DecisionReason
    action: Action = Action.VIEW
    filter_predicate: FilterPredicate | None = None
