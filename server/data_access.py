# ScopeGuard - data layer: rows <-> policy objects, predicate -> SQL WHERE
from datetime import datetime
from sqlalchemy import and_, false, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AcademicYear, Evaluation, Evidence, SubIndicator, User
from scopeguard import (
    AcademicYear as PolicyYear,
    AcademicYearCatalog,
    Requester,
    Resource,
    Role,
    Scope,
)
from scopeguard.filters import And, Eq, FilterPredicate, In, MatchAll, MatchNone, PredicateField

_COLUMNS = {
    PredicateField.OWNER_ID: Evidence.uploader_id,
    PredicateField.SCOPE_ID: Evidence.sub_indicator_id,
    PredicateField.ACADEMIC_YEAR_ID: Evidence.academic_year_id,
}


def predicate_to_clause(predicate: FilterPredicate):
    """Translate a policy FilterPredicate into a SQLAlchemy WHERE clause over Evidence."""
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, MatchNone):
        return false()
    if isinstance(predicate, Eq):
        if predicate.field is PredicateField.DELETED:
            return Evidence.deleted_at.is_not(None) if predicate.value else Evidence.deleted_at.is_(None)
        return _COLUMNS[predicate.field] == predicate.value
    if isinstance(predicate, In):
        if not predicate.values:
            return false()
        return _COLUMNS[predicate.field].in_(sorted(predicate.values))
    if isinstance(predicate, And):
        return and_(*(predicate_to_clause(c) for c in predicate.clauses))
    raise TypeError(f"Unknown predicate node: {predicate!r}")


# --- rows -> policy objects ---

def to_policy_year(row: AcademicYear) -> PolicyYear:
    return PolicyYear(
        id=row.id,
        name=row.name,
        start_year=row.start_date.year,
        is_active=row.is_active,
        upload_window_open=row.upload_window_open,
        evaluation_window_open=row.evaluation_window_open,
    )


def to_resource(row: Evidence) -> Resource:
    return Resource(
        id=row.id,
        owner_id=row.uploader_id,
        scope_id=row.sub_indicator_id,
        academic_year_id=row.academic_year_id,
        created_at=row.uploaded_at,
        deleted_at=row.deleted_at,
    )


def to_scope(row: SubIndicator) -> Scope:
    return Scope(id=row.id, owner_id=row.owner_id)


def evidence_to_dict(row: Evidence) -> dict:
    return {
        "id": row.id,
        "uploader_id": row.uploader_id,
        "sub_indicator_id": row.sub_indicator_id,
        "academic_year_id": row.academic_year_id,
        "original_name": row.original_name,
        "file_size": row.file_size,
        "mime_type": row.mime_type,
        "version": row.version,
        "uploaded_at": row.uploaded_at,
        "deleted_at": row.deleted_at,
    }


def evaluation_to_dict(row: Evaluation) -> dict:
    return {
        "id": row.id,
        "evidence_id": row.evidence_id,
        "evaluator_id": row.evaluator_id,
        "qualitative_score": row.qualitative_score,
        "quantitative_score": row.quantitative_score,
        "comments": row.comments,
        "evaluated_at": row.evaluated_at,
    }


# --- queries ---

async def load_requester(session: AsyncSession, user_id: str) -> Requester | None:
    user = await session.get(User, user_id)
    if user is None:
        return None
    r = await session.execute(select(SubIndicator.id).where(SubIndicator.owner_id == user.id))
    return Requester(
        id=user.id,
        role=Role(user.role),
        is_active=user.is_active,
        owned_scope_ids=frozenset(r.scalars().all()),
    )


async def load_catalog(session: AsyncSession) -> AcademicYearCatalog:
    r = await session.execute(select(AcademicYear))
    return AcademicYearCatalog(years=tuple(to_policy_year(y) for y in r.scalars().all()))


async def get_academic_year(session: AsyncSession, academic_year_id: str) -> AcademicYear | None:
    return await session.get(AcademicYear, academic_year_id)


async def get_current_academic_year(session: AsyncSession) -> AcademicYear | None:
    """The active academic year with the latest start date."""
    r = await session.execute(
        select(AcademicYear).where(AcademicYear.is_active.is_(True)).order_by(AcademicYear.start_date.desc()).limit(1)
    )
    return r.scalar_one_or_none()


async def get_evidence(session: AsyncSession, evidence_id: str) -> Evidence | None:
    return await session.get(Evidence, evidence_id)


async def get_sub_indicator(session: AsyncSession, sub_indicator_id: str) -> SubIndicator | None:
    return await session.get(SubIndicator, sub_indicator_id)


async def list_evidence(
    session: AsyncSession,
    predicate: FilterPredicate,
    academic_year_id: str | None = None,
    sub_indicator_id: str | None = None,
    uploader_id: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Evidence], int]:
    """One page of evidence matching the policy filter and the caller's narrowing. Returns (rows, total)."""
    stmt = select(Evidence).where(predicate_to_clause(predicate))
    if academic_year_id:
        stmt = stmt.where(Evidence.academic_year_id == academic_year_id)
    if sub_indicator_id:
        stmt = stmt.where(Evidence.sub_indicator_id == sub_indicator_id)
    if uploader_id:
        stmt = stmt.where(Evidence.uploader_id == uploader_id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.join(User, User.id == Evidence.uploader_id).where(
            or_(
                Evidence.original_name.ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    r = await session.execute(
        stmt.order_by(Evidence.uploaded_at.desc(), Evidence.id).offset((page - 1) * limit).limit(limit)
    )
    return list(r.scalars().all()), total


async def find_live_evidence(
    session: AsyncSession, uploader_id: str, sub_indicator_id: str, academic_year_id: str
) -> Evidence | None:
    """Latest non-deleted version a user uploaded for a sub-indicator in a year."""
    r = await session.execute(
        select(Evidence)
        .where(
            Evidence.uploader_id == uploader_id,
            Evidence.sub_indicator_id == sub_indicator_id,
            Evidence.academic_year_id == academic_year_id,
            Evidence.deleted_at.is_(None),
        )
        .order_by(Evidence.version.desc())
        .limit(1)
    )
    return r.scalar_one_or_none()


async def create_evidence(
    session: AsyncSession,
    uploader_id: str,
    sub_indicator_id: str,
    academic_year_id: str,
    original_name: str,
    file_size: int,
    mime_type: str | None,
    replace: Evidence | None = None,
) -> Evidence:
    """Register evidence metadata; a replaced version is tombstoned."""
    version = 1
    if replace is not None:
        replace.deleted_at = datetime.utcnow()
        version = replace.version + 1
    row = Evidence(
        uploader_id=uploader_id,
        sub_indicator_id=sub_indicator_id,
        academic_year_id=academic_year_id,
        original_name=original_name,
        file_size=file_size,
        mime_type=mime_type,
        version=version,
    )
    session.add(row)
    await session.commit()
    return row


async def soft_delete_evidence(session: AsyncSession, row: Evidence) -> Evidence:
    row.deleted_at = datetime.utcnow()
    await session.commit()
    return row


async def upsert_evaluation(
    session: AsyncSession,
    evidence_id: str,
    evaluator_id: str,
    qualitative_score: int | None,
    quantitative_score: int | None,
    comments: str | None,
) -> tuple[Evaluation, bool]:
    """Create or update the single evaluation of (evidence, evaluator). Returns (row, created).

    The unique constraint on (evidence_id, evaluator_id) rejects a concurrent
    duplicate insert with IntegrityError.
    """
    r = await session.execute(
        select(Evaluation).where(
            Evaluation.evidence_id == evidence_id,
            Evaluation.evaluator_id == evaluator_id,
        )
    )
    existing = r.scalar_one_or_none()
    if existing is not None:
        if qualitative_score is not None:
            existing.qualitative_score = qualitative_score
        if quantitative_score is not None:
            existing.quantitative_score = quantitative_score
        if comments is not None:
            existing.comments = comments
        existing.evaluated_at = datetime.utcnow()
        await session.commit()
        return existing, False
    row = Evaluation(
        evidence_id=evidence_id,
        evaluator_id=evaluator_id,
        qualitative_score=qualitative_score,
        quantitative_score=quantitative_score,
        comments=comments,
    )
    session.add(row)
    await session.commit()
    return row, True


async def assign_sub_indicator(session: AsyncSession, row: SubIndicator, owner_id: str | None) -> SubIndicator:
    row.owner_id = owner_id
    await session.commit()
    return row


# --- administration ---

def user_to_dict(row: User) -> dict:
    return {
        "id": row.id,
        "email": row.email,
        "name": row.name,
        "role": row.role,
        "is_active": row.is_active,
    }


def academic_year_to_dict(row: AcademicYear) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "start_date": row.start_date,
        "end_date": row.end_date,
        "is_active": row.is_active,
        "upload_window_open": row.upload_window_open,
        "evaluation_window_open": row.evaluation_window_open,
    }


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    return await session.get(User, user_id)


async def update_row(session: AsyncSession, row, changes: dict):
    """Apply the given column changes and commit; takes effect on the next request."""
    for column, value in changes.items():
        setattr(row, column, value)
    await session.commit()
    return row


async def find_overlapping_active_year(session: AsyncSession, start_date, end_date) -> AcademicYear | None:
    r = await session.execute(
        select(AcademicYear)
        .where(
            AcademicYear.is_active.is_(True),
            AcademicYear.start_date <= end_date,
            AcademicYear.end_date >= start_date,
        )
        .limit(1)
    )
    return r.scalar_one_or_none()


async def create_academic_year(
    session: AsyncSession,
    name: str,
    start_date,
    end_date,
    is_active: bool = True,
    upload_window_open: bool = False,
    evaluation_window_open: bool = False,
) -> AcademicYear:
    row = AcademicYear(
        name=name,
        start_date=start_date,
        end_date=end_date,
        is_active=is_active,
        upload_window_open=upload_window_open,
        evaluation_window_open=evaluation_window_open,
    )
    session.add(row)
    await session.commit()
    return row
