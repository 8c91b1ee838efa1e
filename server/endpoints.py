# ScopeGuard - Evidence, evaluation, academic-year, user and scope-assignment routes (every access through the policy engine)
import logging
import math
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_requester
from database.database import get_db
from scopeguard import (
    AccessDecision,
    Action,
    DecisionReason,
    Permission,
    Requester,
    Role,
    accessible_years,
    can_access_resource,
    can_administer,
    can_assign_scope,
    can_upload,
    decide_listing,
)
from scopeguard.audit import get_audit_log, log_decision
from scopeguard.roles import ORGANIZATION_WIDE_ROLES
from server import data_access

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Evidence"])

# Reason code -> (HTTP status, detail)
REASON_STATUS: dict[DecisionReason, tuple[int, str]] = {
    DecisionReason.INACTIVE_ACCOUNT: (403, "Account is inactive"),
    DecisionReason.ROLE_NOT_PERMITTED: (403, "Insufficient permissions"),
    DecisionReason.SCOPE_NOT_OWNED: (403, "Sub-indicator is not assigned to you"),
    DecisionReason.YEAR_OUT_OF_RANGE: (403, "Academic year is outside your access range"),
    DecisionReason.RESOURCE_DELETED: (404, "Evidence not found"),
    DecisionReason.EVALUATION_WINDOW_CLOSED: (400, "Evaluation window is not open for this academic year"),
    DecisionReason.UPLOAD_WINDOW_CLOSED: (400, "Upload window is not open"),
}


class EvidenceCreate(BaseModel):
    sub_indicator_id: str
    original_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(default=0, ge=0)
    mime_type: str | None = None
    replace: bool = False


class EvaluationRequest(BaseModel):
    evidence_id: str
    qualitative_score: int | None = Field(default=None, ge=1, le=5)
    quantitative_score: int | None = Field(default=None, ge=0, le=100)
    comments: str | None = None

    @model_validator(mode="after")
    def _require_a_score(self):
        if self.qualitative_score is None and self.quantitative_score is None:
            raise ValueError("At least one score (qualitative or quantitative) must be provided")
        return self


class ScopeAssignment(BaseModel):
    owner_id: str | None = None


class AcademicYearCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    start_date: date
    end_date: date
    is_active: bool = True
    upload_window_open: bool = False
    evaluation_window_open: bool = False


class AcademicYearUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    is_active: bool | None = None
    upload_window_open: bool | None = None
    evaluation_window_open: bool | None = None


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    role: Role | None = None
    is_active: bool | None = None


def _account_decision(requester: Requester) -> AccessDecision:
    # Routes with no resource to check still record whether the account may act at all
    if requester.is_active:
        return AccessDecision(allowed=True, reason=DecisionReason.OK)
    return AccessDecision(allowed=False, reason=DecisionReason.INACTIVE_ACCOUNT)


def enforce(decision: AccessDecision, requester: Requester, trace_id: str, resource_id: str | None = None) -> None:
    """Audit the decision and raise the matching HTTPException when it is a denial."""
    log_decision(trace_id, requester, decision, resource_id=resource_id)
    if decision.allowed:
        return
    status, detail = REASON_STATUS[decision.reason]
    logger.info("Denied %s on %s for %s: %s", decision.action.value, resource_id, requester.id, decision.reason.value)
    raise HTTPException(status_code=status, detail=detail)


async def _load_resource(db: AsyncSession, evidence_id: str):
    row = await data_access.get_evidence(db, evidence_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Evidence not found")
    year = await data_access.get_academic_year(db, row.academic_year_id)
    return row, data_access.to_resource(row), data_access.to_policy_year(year)


# ============ EVIDENCE ============

@router.get("/evidence")
async def list_evidence(
    academic_year_id: str | None = None,
    sub_indicator_id: str | None = None,
    uploader_id: str | None = None,
    search: str | None = None,
    include_deleted: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Evidence visible to the caller, one page at a time.

    include_deleted only takes effect for admins; uploader_id only narrows the
    listing for roles that see the whole institution.
    """
    catalog = await data_access.load_catalog(db)
    decision = decide_listing(requester, catalog, include_deleted=include_deleted)
    enforce(decision, requester, str(uuid.uuid4()))
    if requester.role not in ORGANIZATION_WIDE_ROLES:
        uploader_id = None
    rows, total = await data_access.list_evidence(
        db,
        decision.filter_predicate,
        academic_year_id=academic_year_id,
        sub_indicator_id=sub_indicator_id,
        uploader_id=uploader_id,
        search=search,
        page=page,
        limit=limit,
    )
    total_pages = math.ceil(total / limit)
    return {
        "total": total,
        "evidence": [data_access.evidence_to_dict(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
        "filter": decision.filter_predicate.model_dump(mode="json"),
    }


@router.get("/evidence/{evidence_id}")
async def get_evidence(
    evidence_id: str,
    include_deleted: bool = False,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    row, resource, year = await _load_resource(db, evidence_id)
    decision = can_access_resource(requester, resource, year, Action.VIEW, include_deleted=include_deleted)
    enforce(decision, requester, str(uuid.uuid4()), resource_id=evidence_id)
    return data_access.evidence_to_dict(row)


@router.post("/evidence", status_code=201)
async def register_evidence(
    body: EvidenceCreate,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Register evidence metadata in the current academic year (file bytes are stored elsewhere)."""
    year_row = await data_access.get_current_academic_year(db)
    if year_row is None:
        raise HTTPException(status_code=400, detail="No active academic year")
    enforce(can_upload(requester, data_access.to_policy_year(year_row)), requester, str(uuid.uuid4()))

    sub_indicator = await data_access.get_sub_indicator(db, body.sub_indicator_id)
    if sub_indicator is None:
        raise HTTPException(status_code=404, detail="Sub-indicator not found")

    existing = await data_access.find_live_evidence(db, requester.id, sub_indicator.id, year_row.id)
    if existing is not None and not body.replace:
        raise HTTPException(
            status_code=409,
            detail="Evidence already exists for this sub-indicator. Use replace=true to overwrite.",
        )
    row = await data_access.create_evidence(
        db,
        uploader_id=requester.id,
        sub_indicator_id=sub_indicator.id,
        academic_year_id=year_row.id,
        original_name=body.original_name,
        file_size=body.file_size,
        mime_type=body.mime_type,
        replace=existing,
    )
    return data_access.evidence_to_dict(row)


@router.delete("/evidence/{evidence_id}")
async def delete_evidence(
    evidence_id: str,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the row stays as a tombstone for the recycle bin."""
    row, resource, year = await _load_resource(db, evidence_id)
    enforce(can_access_resource(requester, resource, year, Action.MODIFY), requester, str(uuid.uuid4()), evidence_id)
    await data_access.soft_delete_evidence(db, row)
    return {"id": row.id, "deleted_at": row.deleted_at}


# ============ EVALUATIONS ============

@router.post("/evaluations")
async def submit_evaluation(
    body: EvaluationRequest,
    response: Response,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Create the caller's evaluation of a piece of evidence, or update it if one exists (201 vs 200)."""
    row, resource, year = await _load_resource(db, body.evidence_id)
    decision = can_access_resource(requester, resource, year, Action.EVALUATE)
    enforce(decision, requester, str(uuid.uuid4()), resource_id=body.evidence_id)
    try:
        evaluation, created = await data_access.upsert_evaluation(
            db,
            evidence_id=row.id,
            evaluator_id=requester.id,
            qualitative_score=body.qualitative_score,
            quantitative_score=body.quantitative_score,
            comments=body.comments,
        )
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Evaluation was submitted concurrently; retry")
    payload = data_access.evaluation_to_dict(evaluation)
    response.status_code = 201 if created else 200
    return payload


# ============ ACADEMIC YEARS ============

@router.get("/academic-years")
async def list_academic_years(
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Every academic year, marked with whether the caller may access it."""
    enforce(_account_decision(requester), requester, str(uuid.uuid4()))
    catalog = await data_access.load_catalog(db)
    rows = accessible_years(requester, catalog)
    return {"academic_years": [r.model_dump(mode="json") for r in rows]}


@router.post("/academic-years", status_code=201)
async def create_academic_year(
    body: AcademicYearCreate,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    enforce(can_administer(requester, Permission.MANAGE_ACADEMIC_YEARS), requester, str(uuid.uuid4()))
    if body.start_date >= body.end_date:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    if body.is_active and await data_access.find_overlapping_active_year(db, body.start_date, body.end_date):
        raise HTTPException(status_code=409, detail="Academic year period overlaps with existing year")
    row = await data_access.create_academic_year(db, **body.model_dump())
    logger.info("Academic year %s created by %s", row.name, requester.id)
    return data_access.academic_year_to_dict(row)


@router.put("/academic-years/{academic_year_id}")
async def update_academic_year(
    academic_year_id: str,
    body: AcademicYearUpdate,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Open or close the upload and evaluation windows, or (de)activate the year."""
    enforce(
        can_administer(requester, Permission.MANAGE_ACADEMIC_YEARS), requester, str(uuid.uuid4()), academic_year_id
    )
    row = await data_access.get_academic_year(db, academic_year_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Academic year not found")
    row = await data_access.update_row(db, row, body.model_dump(exclude_unset=True, exclude_none=True))
    logger.info("Academic year %s updated by %s", row.id, requester.id)
    return data_access.academic_year_to_dict(row)


# ============ USERS ============

@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's role or active flag; the next request they make sees the change."""
    enforce(can_administer(requester, Permission.MANAGE_USERS), requester, str(uuid.uuid4()), user_id)
    row = await data_access.get_user(db, user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user_id == requester.id and body.is_active is False:
        raise HTTPException(status_code=400, detail="Cannot deactivate your own account")
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "role" in changes:
        changes["role"] = changes["role"].value
    row = await data_access.update_row(db, row, changes)
    logger.info("User %s updated by %s: %s", row.id, requester.id, sorted(changes))
    return data_access.user_to_dict(row)


# ============ SCOPE ASSIGNMENTS ============

@router.put("/scope-assignments/{sub_indicator_id}")
async def assign_scope(
    sub_indicator_id: str,
    body: ScopeAssignment,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db),
):
    row = await data_access.get_sub_indicator(db, sub_indicator_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Sub-indicator not found")
    enforce(can_assign_scope(requester, data_access.to_scope(row)), requester, str(uuid.uuid4()), sub_indicator_id)
    row = await data_access.assign_sub_indicator(db, row, body.owner_id)
    return {"id": row.id, "code": row.code, "owner_id": row.owner_id}


# ============ AUDIT LOG ============

@router.get("/audit-log")
async def audit_log(
    limit: int = Query(default=50, ge=1, le=500),
    requester: Requester = Depends(require_requester),
):
    """Recent access decisions (admins only)."""
    enforce(can_administer(requester, Permission.VIEW_AUDIT_LOGS), requester, str(uuid.uuid4()))
    entries = get_audit_log(limit)
    return {"total_entries": len(entries), "entries": entries}
