# ScopeGuard - role capability table and historical-access constants
from enum import Enum

from .models import Role


class Permission(str, Enum):
    MANAGE_USERS = "manage_users"
    MANAGE_ACADEMIC_YEARS = "manage_academic_years"
    MANAGE_INDICATORS = "manage_indicators"
    UPLOAD_EVIDENCE = "upload_evidence"
    EVALUATE_IQA = "evaluate_iqa"
    EVALUATE_EQA = "evaluate_eqa"
    VIEW_EXECUTIVE_DASHBOARD = "view_executive_dashboard"
    ACCESS_RECYCLE_BIN = "access_recycle_bin"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    EXPORT_REPORTS = "export_reports"


# EQA evaluators see the current calendar year and this many years back (inclusive)
EQA_LOOKBACK_YEARS = 3

# Registry of capabilities per role; every Role must have an entry
ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.TEACHER: frozenset({Permission.UPLOAD_EVIDENCE}),
    Role.IQA_EVALUATOR: frozenset({Permission.EVALUATE_IQA}),
    Role.EQA_EVALUATOR: frozenset({Permission.EVALUATE_EQA}),
    Role.EXECUTIVE: frozenset({
        Permission.VIEW_EXECUTIVE_DASHBOARD,
        Permission.EXPORT_REPORTS,
    }),
}

# Roles that may act as an evaluator (ADMIN may act as any evaluator)
EVALUATOR_ROLES = frozenset({Role.IQA_EVALUATOR, Role.EQA_EVALUATOR, Role.ADMIN})

# Roles that see the whole institution and may narrow listings by uploader
ORGANIZATION_WIDE_ROLES = frozenset({Role.ADMIN, Role.EXECUTIVE})

# Roles that may register evidence
UPLOADER_ROLES = frozenset({Role.TEACHER, Role.ADMIN})


def role_permissions(role: Role) -> frozenset[Permission]:
    return ROLE_PERMISSIONS[role]


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]
