# ScopeGuard - evidence access policy engine
from .models import (
    Role,
    Action,
    DecisionReason,
    Requester,
    Scope,
    Resource,
    AcademicYear,
    AcademicYearCatalog,
    YearAccess,
    AccessDecision,
)
from .filters import FilterPredicate, PredicateField, MATCH_ALL, MATCH_NONE, matches
from .roles import Permission, EQA_LOOKBACK_YEARS, has_permission, role_permissions
from .policy import (
    can_access_resource,
    build_list_filter,
    decide_listing,
    can_administer,
    can_upload,
    can_assign_scope,
    accessible_years,
)

__all__ = [
    "Role",
    "Action",
    "DecisionReason",
    "Requester",
    "Scope",
    "Resource",
    "AcademicYear",
    "AcademicYearCatalog",
    "YearAccess",
    "AccessDecision",
    "FilterPredicate",
    "PredicateField",
    "MATCH_ALL",
    "MATCH_NONE",
    "matches",
    "Permission",
    "EQA_LOOKBACK_YEARS",
    "has_permission",
    "role_permissions",
    "can_access_resource",
    "build_list_filter",
    "decide_listing",
    "can_administer",
    "can_upload",
    "can_assign_scope",
    "accessible_years",
]
