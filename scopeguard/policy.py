# ScopeGuard - Access policy engine (account > tombstone > role > scope > year > window)
#
# Pure functions: no I/O, no shared state. Callers resolve every input first
# and re-decide inside their own transaction if they need strict consistency.
from datetime import datetime, timezone
from typing import Callable

from .filters import (
    MATCH_ALL,
    MATCH_NONE,
    FilterPredicate,
    PredicateField,
    all_of,
    eq,
    within,
)
from .models import (
    AcademicYear,
    AcademicYearCatalog,
    AccessDecision,
    Action,
    DecisionReason,
    Requester,
    Resource,
    Role,
    Scope,
    YearAccess,
)
from .roles import (
    EQA_LOOKBACK_YEARS,
    EVALUATOR_ROLES,
    ORGANIZATION_WIDE_ROLES,
    UPLOADER_ROLES,
    Permission,
    has_permission,
)

OK = DecisionReason.OK


def _this_year(current_year: int | None) -> int:
    if current_year is not None:
        return current_year
    return datetime.now(timezone.utc).year


def _check_requester(requester: Requester) -> None:
    # Programmer errors, not policy denials: fail loudly.
    if requester is None:
        raise TypeError("requester is required")
    if not isinstance(requester.role, Role):
        raise ValueError(f"Unknown role: {requester.role!r}")


def _decide(reason: DecisionReason, action: Action) -> AccessDecision:
    return AccessDecision(allowed=reason is OK, reason=reason, action=action)


def _within_eqa_lookback(start_year: int, current_year: int) -> bool:
    # Inclusive at exactly EQA_LOOKBACK_YEARS back, exclusive beyond; no future years.
    return 0 <= current_year - start_year <= EQA_LOOKBACK_YEARS


# --- View rules, one per role ---

def _view_unrestricted(requester, resource, year, current_year) -> DecisionReason:
    return OK


def _view_teacher(requester, resource, year, current_year) -> DecisionReason:
    if resource.owner_id != requester.id:
        return DecisionReason.ROLE_NOT_PERMITTED
    return OK


def _view_iqa(requester, resource, year, current_year) -> DecisionReason:
    if resource.scope_id not in requester.owned_scope_ids:
        return DecisionReason.SCOPE_NOT_OWNED
    if not year.is_active:
        return DecisionReason.YEAR_OUT_OF_RANGE
    return OK


def _view_eqa(requester, resource, year, current_year) -> DecisionReason:
    # Unassigned EQA evaluators browse every scope; assigned ones only their own.
    if requester.owned_scope_ids and resource.scope_id not in requester.owned_scope_ids:
        return DecisionReason.SCOPE_NOT_OWNED
    if not _within_eqa_lookback(year.start_year, current_year):
        return DecisionReason.YEAR_OUT_OF_RANGE
    return OK


_ViewRule = Callable[[Requester, Resource, AcademicYear, int], DecisionReason]

VIEW_RULES: dict[Role, _ViewRule] = {
    Role.ADMIN: _view_unrestricted,
    Role.EXECUTIVE: _view_unrestricted,
    Role.TEACHER: _view_teacher,
    Role.IQA_EVALUATOR: _view_iqa,
    Role.EQA_EVALUATOR: _view_eqa,
}


def _evaluate(requester, resource, year, current_year) -> DecisionReason:
    if requester.role not in EVALUATOR_ROLES:
        return DecisionReason.ROLE_NOT_PERMITTED
    reason = VIEW_RULES[requester.role](requester, resource, year, current_year)
    if reason is not OK:
        return reason
    if requester.role is Role.EQA_EVALUATOR and resource.scope_id not in requester.owned_scope_ids:
        return DecisionReason.SCOPE_NOT_OWNED
    # No role bypasses the evaluation window, ADMIN included.
    if not year.evaluation_window_open:
        return DecisionReason.EVALUATION_WINDOW_CLOSED
    return OK


def _modify(requester, resource, year, current_year) -> DecisionReason:
    if requester.role is Role.ADMIN:
        return OK
    if requester.role is Role.TEACHER:
        return _view_teacher(requester, resource, year, current_year)
    return DecisionReason.ROLE_NOT_PERMITTED


_ACTION_RULES = {
    Action.VIEW: lambda r, res, y, cy: VIEW_RULES[r.role](r, res, y, cy),
    Action.EVALUATE: _evaluate,
    Action.MODIFY: _modify,
}


def can_access_resource(
    requester: Requester,
    resource: Resource,
    academic_year: AcademicYear,
    action: Action = Action.VIEW,
    *,
    current_year: int | None = None,
    include_deleted: bool = False,
) -> AccessDecision:
    """
    Decide whether requester may view, evaluate or modify one evidence resource.
    Never raises for a denial; the reason code says why.
    Re-evaluating an already evaluated resource is not forbidden here.
    """
    _check_requester(requester)
    if resource.academic_year_id != academic_year.id:
        raise ValueError(
            f"Resource {resource.id} belongs to academic year {resource.academic_year_id}, "
            f"got {academic_year.id}"
        )
    if action not in _ACTION_RULES:
        raise ValueError(f"Unsupported action for resources: {action!r}")

    if not requester.is_active:
        return _decide(DecisionReason.INACTIVE_ACCOUNT, action)
    if resource.is_deleted and not (include_deleted and requester.role is Role.ADMIN):
        return _decide(DecisionReason.RESOURCE_DELETED, action)

    reason = _ACTION_RULES[action](requester, resource, academic_year, _this_year(current_year))
    return _decide(reason, action)


def build_list_filter(
    requester: Requester,
    catalog: AcademicYearCatalog,
    *,
    current_year: int | None = None,
    include_deleted: bool = False,
) -> FilterPredicate:
    """Scope/year restriction a caller ANDs into its evidence-listing query."""
    _check_requester(requester)
    if not requester.is_active:
        return MATCH_NONE

    role = requester.role
    if role in ORGANIZATION_WIDE_ROLES:
        predicate = MATCH_ALL
    elif role is Role.TEACHER:
        predicate = eq(PredicateField.OWNER_ID, requester.id)
    elif role is Role.IQA_EVALUATOR:
        active = catalog.active_year()
        if active is None or not requester.owned_scope_ids:
            return MATCH_NONE
        predicate = all_of(
            within(PredicateField.SCOPE_ID, requester.owned_scope_ids),
            eq(PredicateField.ACADEMIC_YEAR_ID, active.id),
        )
    elif role is Role.EQA_EVALUATOR:
        year = _this_year(current_year)
        scope_clause = MATCH_ALL
        if requester.owned_scope_ids:
            scope_clause = within(PredicateField.SCOPE_ID, requester.owned_scope_ids)
        predicate = all_of(
            scope_clause,
            within(PredicateField.ACADEMIC_YEAR_ID, catalog.ids_between(year - EQA_LOOKBACK_YEARS, year)),
        )
    else:
        raise ValueError(f"Unknown role: {role!r}")

    if include_deleted and role is Role.ADMIN:
        return predicate
    return all_of(predicate, eq(PredicateField.DELETED, False))


def decide_listing(
    requester: Requester,
    catalog: AcademicYearCatalog,
    *,
    current_year: int | None = None,
    include_deleted: bool = False,
) -> AccessDecision:
    """Listing decision carrying the filter the caller ANDs into its query."""
    predicate = build_list_filter(
        requester, catalog, current_year=current_year, include_deleted=include_deleted
    )
    reason = OK if requester.is_active else DecisionReason.INACTIVE_ACCOUNT
    return AccessDecision(
        allowed=reason is OK, reason=reason, action=Action.VIEW, filter_predicate=predicate
    )


# Administrative capabilities and the action recorded for them
_ADMIN_ACTIONS: dict[Permission, Action] = {
    Permission.MANAGE_USERS: Action.MANAGE_USERS,
    Permission.MANAGE_ACADEMIC_YEARS: Action.MANAGE_ACADEMIC_YEARS,
    Permission.VIEW_AUDIT_LOGS: Action.VIEW_AUDIT_LOG,
}


def can_administer(requester: Requester, permission: Permission) -> AccessDecision:
    """Account and academic-year management, audit-log access."""
    _check_requester(requester)
    if permission not in _ADMIN_ACTIONS:
        raise ValueError(f"Not an administrative capability: {permission!r}")
    action = _ADMIN_ACTIONS[permission]
    if not requester.is_active:
        return _decide(DecisionReason.INACTIVE_ACCOUNT, action)
    if not has_permission(requester.role, permission):
        return _decide(DecisionReason.ROLE_NOT_PERMITTED, action)
    return _decide(OK, action)


def can_upload(requester: Requester, academic_year: AcademicYear) -> AccessDecision:
    """Register new evidence in academic_year. ADMIN may upload outside the upload window."""
    _check_requester(requester)
    if not requester.is_active:
        return _decide(DecisionReason.INACTIVE_ACCOUNT, Action.UPLOAD)
    if requester.role not in UPLOADER_ROLES:
        return _decide(DecisionReason.ROLE_NOT_PERMITTED, Action.UPLOAD)
    if not academic_year.is_active:
        return _decide(DecisionReason.YEAR_OUT_OF_RANGE, Action.UPLOAD)
    if not academic_year.upload_window_open and requester.role is not Role.ADMIN:
        return _decide(DecisionReason.UPLOAD_WINDOW_CLOSED, Action.UPLOAD)
    return _decide(OK, Action.UPLOAD)


def can_assign_scope(requester: Requester, scope: Scope) -> AccessDecision:
    """Only administrators change who owns a scope."""
    _check_requester(requester)
    if not requester.is_active:
        return _decide(DecisionReason.INACTIVE_ACCOUNT, Action.ASSIGN_SCOPE)
    if requester.role is not Role.ADMIN:
        return _decide(DecisionReason.ROLE_NOT_PERMITTED, Action.ASSIGN_SCOPE)
    return _decide(OK, Action.ASSIGN_SCOPE)


def accessible_years(
    requester: Requester,
    catalog: AcademicYearCatalog,
    *,
    current_year: int | None = None,
) -> list[YearAccess]:
    """Historical-access listing, most recent year first."""
    _check_requester(requester)
    year_now = _this_year(current_year)
    active = catalog.active_year()
    out = []
    for year in sorted(catalog.years, key=lambda y: y.start_year, reverse=True):
        if not requester.is_active:
            out.append(YearAccess(year=year, accessible=False, reason="Account is inactive"))
        elif requester.role is Role.EQA_EVALUATOR and not _within_eqa_lookback(year.start_year, year_now):
            out.append(YearAccess(
                year=year,
                accessible=False,
                reason=f"EQA evaluators can only access years {year_now - EQA_LOOKBACK_YEARS} to {year_now}",
            ))
        elif requester.role is Role.IQA_EVALUATOR and (active is None or year.id != active.id):
            out.append(YearAccess(
                year=year,
                accessible=False,
                reason="IQA evaluators can only access the current academic year",
            ))
        else:
            out.append(YearAccess(year=year, accessible=True))
    return out
