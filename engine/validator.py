"""Criteria validation for untrusted input.

Turns query-string values (always text), persisted JSON payloads, or loosely
typed UI input into FilterCriteria / SortSpec / PageState.

The contract is lenient: nothing here raises for malformed input.  A bad
field is dropped and reported as a ValidationIssue; every other field is
kept, so one corrupt parameter never blanks the whole view.  For enum sets
only the unknown members are dropped.

Usage::

    result = validate_criteria({"symbols": "btc,eth", "pnl_min": "abc"})
    result.value      # FilterCriteria(symbols=frozenset({"BTC", "ETH"}))
    result.issues     # (ValidationIssue(field="pnl_min", reason="not_a_number", ...),)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar

from engine.criteria import (
    ALLOWED_PAGE_SIZES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    KNOWN_EMOTIONS,
    FilterCriteria,
    Market,
    Outcome,
    PageState,
    QueryState,
    Side,
    SortDirection,
    SortField,
    SortSpec,
)
from engine.errors import ValidationError
from utils.patterns import ISO_DATE, STRATEGY_ID, SYMBOL
from utils.strings import parse_number, split_csv

T = TypeVar("T")


class Reason(str, Enum):
    UNKNOWN_VALUE = "unknown_value"
    MALFORMED_DATE = "malformed_date"
    MALFORMED_VALUE = "malformed_value"
    NOT_A_NUMBER = "not_a_number"
    INVERTED_RANGE = "inverted_range"
    OUT_OF_RANGE = "out_of_range"
    WRONG_TYPE = "wrong_type"


@dataclass(frozen=True)
class ValidationIssue:
    """One rejected field (or enum member) and why."""

    field: str
    reason: Reason
    value: Any = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = {"field": self.field, "reason": self.reason.value,
             "value": None if self.value is None else str(self.value)}
        if self.detail:
            d["detail"] = self.detail
        return d


@dataclass(frozen=True)
class Validated(Generic[T]):
    """A best-effort valid value plus the issues found producing it."""

    value: T
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def rejected_fields(self) -> set[str]:
        return {i.field for i in self.issues}


# ── Field readers ─────────────────────────────────────────────────────────────


def _read_date(name: str, raw: Any, issues: list[ValidationIssue]) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str) and ISO_DATE.match(raw.strip()):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            pass
    issues.append(ValidationIssue(name, Reason.MALFORMED_DATE, raw, "expected YYYY-MM-DD"))
    return None


def _read_number(name: str, raw: Any, issues: list[ValidationIssue]) -> float | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    number = parse_number(raw)
    if number is None:
        issues.append(ValidationIssue(name, Reason.NOT_A_NUMBER, raw))
    return number


def _read_enum_set(name: str, raw: Any, enum_cls: type[Enum],
                   issues: list[ValidationIssue]) -> frozenset | None:
    if raw is not None and not isinstance(raw, (str, list, tuple, set, frozenset, Enum)):
        issues.append(ValidationIssue(name, Reason.WRONG_TYPE, raw))
        return None
    members = set()
    for part in split_csv(raw.value if isinstance(raw, Enum) else raw):
        try:
            members.add(enum_cls(part))
        except ValueError:
            issues.append(ValidationIssue(name, Reason.UNKNOWN_VALUE, part))
    return frozenset(members) or None


def _read_symbols(raw: Any, issues: list[ValidationIssue]) -> frozenset[str] | None:
    if raw is not None and not isinstance(raw, (str, list, tuple, set, frozenset)):
        issues.append(ValidationIssue("symbols", Reason.WRONG_TYPE, raw))
        return None
    symbols = set()
    for part in split_csv(raw):
        symbol = part.upper()
        if SYMBOL.match(symbol):
            symbols.add(symbol)
        else:
            issues.append(ValidationIssue("symbols", Reason.MALFORMED_VALUE, part))
    return frozenset(symbols) or None


def _read_emotions(raw: Any, issues: list[ValidationIssue]) -> frozenset[str] | None:
    if raw is not None and not isinstance(raw, (str, list, tuple, set, frozenset)):
        issues.append(ValidationIssue("emotions", Reason.WRONG_TYPE, raw))
        return None
    emotions = set()
    for part in split_csv(raw):
        tag = part.upper()
        if tag in KNOWN_EMOTIONS:
            emotions.add(tag)
        else:
            issues.append(ValidationIssue("emotions", Reason.UNKNOWN_VALUE, part))
    return frozenset(emotions) or None


def _read_strategy(raw: Any, issues: list[ValidationIssue]) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        raw = str(raw)
    if not isinstance(raw, str):
        issues.append(ValidationIssue("strategy", Reason.WRONG_TYPE, raw))
        return None
    text = raw.strip()
    if not text:
        return None
    if not STRATEGY_ID.match(text):
        issues.append(ValidationIssue("strategy", Reason.MALFORMED_VALUE, raw))
        return None
    return text


def _read_outcome(raw: Any, issues: list[ValidationIssue]) -> Outcome | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, str) and raw.strip().lower() == "all":
        return None
    try:
        return Outcome(raw)
    except ValueError:
        issues.append(ValidationIssue("outcome", Reason.UNKNOWN_VALUE, raw))
        return None


# ── Public validators ─────────────────────────────────────────────────────────


def validate_criteria(raw: Mapping[str, Any] | None) -> Validated[FilterCriteria]:
    """Validate a mapping keyed by FilterCriteria field names.

    Unknown keys are ignored so payloads written by older versions still load.
    """
    if raw is None:
        return Validated(FilterCriteria())
    if isinstance(raw, FilterCriteria):
        return Validated(raw)
    if not isinstance(raw, Mapping):
        return Validated(FilterCriteria(), (ValidationIssue("criteria", Reason.WRONG_TYPE, raw),))

    issues: list[ValidationIssue] = []
    fields: dict[str, Any] = {
        "date_from": _read_date("date_from", raw.get("date_from"), issues),
        "date_to": _read_date("date_to", raw.get("date_to"), issues),
        "symbols": _read_symbols(raw.get("symbols"), issues),
        "markets": _read_enum_set("markets", raw.get("markets"), Market, issues),
        "sides": _read_enum_set("sides", raw.get("sides"), Side, issues),
        "emotions": _read_emotions(raw.get("emotions"), issues),
        "strategy": _read_strategy(raw.get("strategy"), issues),
        "pnl_min": _read_number("pnl_min", raw.get("pnl_min"), issues),
        "pnl_max": _read_number("pnl_max", raw.get("pnl_max"), issues),
        "outcome": _read_outcome(raw.get("outcome"), issues),
    }

    if fields["date_from"] and fields["date_to"] and fields["date_from"] > fields["date_to"]:
        issues.append(ValidationIssue(
            "date_range", Reason.INVERTED_RANGE,
            f"{fields['date_from']}..{fields['date_to']}", "start is after end",
        ))
        fields["date_from"] = fields["date_to"] = None

    if (fields["pnl_min"] is not None and fields["pnl_max"] is not None
            and fields["pnl_min"] > fields["pnl_max"]):
        issues.append(ValidationIssue(
            "pnl_range", Reason.INVERTED_RANGE,
            f"{fields['pnl_min']}..{fields['pnl_max']}", "minimum exceeds maximum",
        ))
        fields["pnl_min"] = fields["pnl_max"] = None

    try:
        criteria = FilterCriteria(**fields)
    except ValidationError as exc:
        issues.append(ValidationIssue(exc.field, Reason.MALFORMED_VALUE, exc.value, exc.reason))
        criteria = FilterCriteria()
    return Validated(criteria, tuple(issues))


def validate_sort(raw: Any) -> Validated[SortSpec]:
    """Validate ``"field:direction"``, ``{"field": ..., "direction": ...}`` or a SortSpec."""
    if raw is None or raw == "":
        return Validated(DEFAULT_SORT)
    if isinstance(raw, SortSpec):
        return Validated(raw)

    if isinstance(raw, str):
        name, _, direction = raw.strip().partition(":")
    elif isinstance(raw, Mapping):
        name, direction = raw.get("field"), raw.get("direction")
    else:
        return Validated(DEFAULT_SORT, (ValidationIssue("sort", Reason.WRONG_TYPE, raw),))

    try:
        sort_field = SortField(name)
    except ValueError:
        return Validated(DEFAULT_SORT, (
            ValidationIssue("sort", Reason.UNKNOWN_VALUE, name,
                            f"sortable fields: {', '.join(f.value for f in SortField)}"),
        ))

    issues: list[ValidationIssue] = []
    if direction in (None, ""):
        sort_dir = SortDirection.DESC
    else:
        try:
            sort_dir = SortDirection(direction)
        except ValueError:
            issues.append(ValidationIssue("sort", Reason.UNKNOWN_VALUE, direction, "expected asc or desc"))
            sort_dir = SortDirection.DESC
    return Validated(SortSpec(sort_field, sort_dir), tuple(issues))


def _read_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    return None


def validate_page(page: Any = None, page_size: Any = None) -> Validated[PageState]:
    """Validate a 1-indexed page number and a page size from the allowed set."""
    issues: list[ValidationIssue] = []

    number = 1
    if page not in (None, ""):
        parsed = _read_int(page)
        if parsed is None:
            issues.append(ValidationIssue("page", Reason.NOT_A_NUMBER, page))
        elif parsed < 1:
            issues.append(ValidationIssue("page", Reason.OUT_OF_RANGE, page, "pages start at 1"))
        else:
            number = parsed

    size = DEFAULT_PAGE_SIZE
    if page_size not in (None, ""):
        parsed = _read_int(page_size)
        if parsed is None:
            issues.append(ValidationIssue("page_size", Reason.NOT_A_NUMBER, page_size))
        elif parsed not in ALLOWED_PAGE_SIZES:
            issues.append(ValidationIssue(
                "page_size", Reason.OUT_OF_RANGE, page_size,
                f"allowed sizes: {', '.join(map(str, ALLOWED_PAGE_SIZES))}",
            ))
        else:
            size = parsed

    return Validated(PageState(page=number, page_size=size), tuple(issues))


def validate_state(raw: Mapping[str, Any] | None) -> Validated[QueryState]:
    """Validate ``{"criteria": {...}, "sort": ..., "page": ..., "page_size": ...}``."""
    if raw is None:
        return Validated(QueryState())
    if not isinstance(raw, Mapping):
        return Validated(QueryState(), (ValidationIssue("state", Reason.WRONG_TYPE, raw),))
    criteria = validate_criteria(raw.get("criteria"))
    sort = validate_sort(raw.get("sort"))
    page = validate_page(raw.get("page"), raw.get("page_size"))
    return Validated(
        QueryState(criteria=criteria.value, sort=sort.value, page=page.value),
        criteria.issues + sort.issues + page.issues,
    )
