"""
Compile table filters into PostgREST `or=` expressions.

Filters and nested AND/OR/NOT groups are flattened into disjunctive normal
form: a list of clauses, each clause a list of conditions that must all
hold. Each clause renders as `and(...)` and the clauses are joined by commas
inside the caller's `or=(...)`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

FilterType = Literal["text", "number", "date", "select", "multiselect"]
Scalar = Union[str, int, float, bool, None]

_TRUE_VALUES = {"true", "yes", "1", "כן"}
_FALSE_VALUES = {"false", "no", "0", "לא"}


class ActiveFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    field_id: str = Field(alias="fieldId")
    field_label: Optional[str] = Field(default=None, alias="fieldLabel")
    operator: str
    values: list[str] = Field(default_factory=list)
    type: FilterType = "text"


class FilterGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str = "root"
    operator: Literal["and", "or"] = "and"
    negate: bool = Field(default=False, alias="not")
    children: list[Union[ActiveFilter, FilterGroup]] = Field(default_factory=list)


FilterGroup.model_rebuild()


@dataclass
class FieldFilterConfig:
    column: str | None = None
    type: FilterType | None = None
    is_array: bool = False
    value_map: Callable[[str], Scalar] | None = None
    # e.g. "subscription_data->>months" or "budgets.name"
    related_path: str | None = None


@dataclass
class Condition:
    column: str
    operator: str
    value: Any
    negate: bool = False

    def render(self) -> str:
        prefix = "not." if self.negate else ""
        if self.value is None or self.value == "null":
            return f"{self.column}.not.is.null" if self.negate else f"{self.column}.is.null"
        if self.operator == "in":
            return f"{self.column}.{prefix}in.({','.join(_fmt(v) for v in self.value)})"
        if self.operator == "ov":
            values = self.value if isinstance(self.value, list) else [self.value]
            return f"{self.column}.{prefix}ov.{{{','.join(_fmt(v) for v in values)}}}"
        return f"{self.column}.{prefix}{self.operator}.{_fmt(self.value)}"


Clause = list[Condition]
Dnf = list[Clause]
FieldConfigs = dict[str, FieldFilterConfig]


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_boolean(value: str) -> Scalar:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return value


def _number(value: str | None) -> float | int:
    number = float(value or 0)
    return int(number) if number.is_integer() else number


def _single(column: str, operator: str, value: Any, negate: bool) -> Dnf:
    return [[Condition(column, operator, value, negate)]]


def _resolve_filter(flt: ActiveFilter, negate: bool, configs: FieldConfigs) -> Dnf:
    config = configs.get(flt.field_id) or FieldFilterConfig()
    column = config.related_path or config.column or flt.field_id
    filter_type = config.type or flt.type
    first = flt.values[0] if flt.values else None

    if filter_type == "text":
        needle = f"%{first}%" if first else "%"
        if flt.operator == "contains":
            return _single(column, "ilike", needle, negate)
        if flt.operator == "notContains":
            return _single(column, "ilike", needle, not negate)
        if flt.operator == "equals":
            return _single(column, "ilike", first or "", negate)
        if flt.operator == "notEquals":
            return _single(column, "ilike", first or "", not negate)
        return []

    if filter_type == "number":
        if flt.operator == "equals":
            return _single(column, "eq", _number(first), negate)
        if flt.operator == "notEquals":
            return _single(column, "eq", _number(first), not negate)
        if flt.operator == "greaterThan":
            return _single(column, "gt", _number(first), negate)
        if flt.operator == "lessThan":
            return _single(column, "lt", _number(first), negate)
        return []

    if filter_type == "date":
        if flt.operator == "equals":
            return _single(column, "eq", first, negate)
        if flt.operator == "before":
            return _single(column, "lt", first, negate)
        if flt.operator == "after":
            return _single(column, "gt", first, negate)
        if flt.operator == "between":
            if len(flt.values) < 2 or not flt.values[0] or not flt.values[1]:
                return []
            start, end = flt.values[0], flt.values[1]
            if not negate:
                return [[Condition(column, "gte", start), Condition(column, "lte", end)]]
            return [[Condition(column, "lt", start)], [Condition(column, "gt", end)]]
        return []

    if filter_type in ("select", "multiselect"):
        mapper = config.value_map or to_boolean
        values = [mapper(value) for value in flt.values]
        flipped = not negate if flt.operator == "isNot" else negate
        if config.is_array:
            return _single(column, "ov", values, flipped)
        if len(values) > 1:
            return _single(column, "in", values, flipped)
        return _single(column, "eq", values[0] if values else None, flipped)

    return []


def _and(left: Dnf, right: Dnf) -> Dnf:
    return [l + r for l in left for r in right]


def build_dnf(
    node: FilterGroup | ActiveFilter,
    configs: FieldConfigs | None = None,
    negate: bool = False,
) -> Dnf:
    configs = configs or {}
    if isinstance(node, ActiveFilter):
        return _resolve_filter(node, negate, configs)

    negate = not negate if node.negate else negate
    if not node.children:
        return []

    # De Morgan: a negated AND becomes an OR of negated children and vice versa
    conjunctive = (node.operator == "and") != negate
    result: Dnf = []
    for child in node.children:
        child_dnf = build_dnf(child, configs, negate)
        if not result:
            result = child_dnf
        elif conjunctive:
            result = _and(result, child_dnf)
        else:
            result = result + child_dnf
    return result


def build_or_expression(
    group: FilterGroup | None,
    configs: FieldConfigs | None = None,
) -> str | None:
    """
    Render a filter group as the body of a PostgREST `or=(...)` parameter.

    Returns None when the group has nothing to filter on.
    """

    if group is None or not group.children:
        return None
    dnf = build_dnf(group, configs)
    if not dnf:
        return None

    clauses: list[str] = []
    for clause in dnf:
        rendered = [condition.render() for condition in clause]
        clauses.append(rendered[0] if len(rendered) == 1 else f"and({','.join(rendered)})")
    return ",".join(clauses)


def filters_to_group(filters: list[ActiveFilter] | list[dict[str, Any]]) -> FilterGroup | None:
    """
    Wrap a flat list of active filters (as stored in table state or a saved
    view's `advancedFilters`) in an AND group.
    """

    if not filters:
        return None
    children = [
        flt if isinstance(flt, ActiveFilter) else ActiveFilter.model_validate(flt)
        for flt in filters
    ]
    return FilterGroup(children=children)
