# ScopeGuard - storage-agnostic listing filter (tagged predicate AST)
#
# The engine hands one of these to the data layer, which turns it into a
# SQL WHERE clause (server/data_access.py) or evaluates it in memory (matches).
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class PredicateField(str, Enum):
    OWNER_ID = "owner_id"
    SCOPE_ID = "scope_id"
    ACADEMIC_YEAR_ID = "academic_year_id"
    DELETED = "deleted"


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class MatchAll(_Node):
    """Unrestricted."""
    op: Literal["ALL"] = "ALL"


class MatchNone(_Node):
    """Explicit empty-set sentinel: selects nothing."""
    op: Literal["NONE"] = "NONE"


class Eq(_Node):
    op: Literal["EQ"] = "EQ"
    field: PredicateField
    value: bool | str


class In(_Node):
    op: Literal["IN"] = "IN"
    field: PredicateField
    values: frozenset[str]


class And(_Node):
    op: Literal["AND"] = "AND"
    clauses: tuple["FilterPredicate", ...]


FilterPredicate = Annotated[
    Union[MatchAll, MatchNone, Eq, In, And],
    Field(discriminator="op"),
]

And.model_rebuild()

MATCH_ALL = MatchAll()
MATCH_NONE = MatchNone()


def eq(field: PredicateField, value: bool | str) -> Eq:
    return Eq(field=field, value=value)


def within(field: PredicateField, values) -> FilterPredicate:
    """IN over a set; an empty set collapses to MATCH_NONE, never to MATCH_ALL."""
    values = frozenset(values)
    if not values:
        return MATCH_NONE
    return In(field=field, values=values)


def all_of(*clauses: FilterPredicate) -> FilterPredicate:
    """Conjunction with constant folding: NONE absorbs, ALL is the identity."""
    flat: list[FilterPredicate] = []
    for clause in clauses:
        if isinstance(clause, MatchNone):
            return MATCH_NONE
        if isinstance(clause, MatchAll):
            continue
        if isinstance(clause, And):
            flat.extend(clause.clauses)
        else:
            flat.append(clause)
    if not flat:
        return MATCH_ALL
    if len(flat) == 1:
        return flat[0]
    return And(clauses=tuple(flat))


def _field_value(resource: Any, field: PredicateField):
    if field is PredicateField.DELETED:
        return resource.is_deleted
    return getattr(resource, field.value)


def matches(predicate: FilterPredicate, resource: Any) -> bool:
    """Evaluate a predicate against a single resource in memory."""
    if isinstance(predicate, MatchAll):
        return True
    if isinstance(predicate, MatchNone):
        return False
    if isinstance(predicate, Eq):
        return _field_value(resource, predicate.field) == predicate.value
    if isinstance(predicate, In):
        return _field_value(resource, predicate.field) in predicate.values
    if isinstance(predicate, And):
        return all(matches(c, resource) for c in predicate.clauses)
    raise TypeError(f"Unknown predicate node: {predicate!r}")
