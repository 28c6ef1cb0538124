"""Query builder for PocketBase list endpoints.

Turns structured filter trees, sort fields, expand paths and pagination into
the URL query string PocketBase expects. Rendering is pure: equal specs
always produce identical strings, and caller ordering of sort fields, expand
paths and filter terms is preserved.

Example:
    >>> spec = QuerySpec(
    ...     filter=Field("status").eq("active") & Field("views").gt(10),
    ...     sort=("-created",),
    ...     page=1,
    ...     per_page=20,
    ... )
    >>> render(spec)
    'page=1&perPage=20&sort=-created&filter=status%20%3D%20%27active%27%20%26%26%20views%20%3E%2010'
"""

import dataclasses
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from .errors import ValidationError

_PLACEHOLDER_RE = re.compile(r"\{:(\w+)\}")


class Operator(str, Enum):
    """Filter comparison operators understood by PocketBase."""

    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "~"
    NOT_LIKE = "!~"


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


def escape_filter_value(value: str) -> str:
    """Escape backslashes and single quotes for use inside a quoted literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def unescape_filter_value(escaped: str) -> str:
    """Reverse ``escape_filter_value``.

    A backslash makes the following character literal. A trailing lone
    backslash is kept as-is.
    """
    out: List[str] = []
    chars = iter(escaped)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, None)
            out.append("\\" if nxt is None else nxt)
        else:
            out.append(ch)
    return "".join(out)


def format_datetime(value: datetime) -> str:
    """Format a datetime as PocketBase's UTC timestamp (naive means UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def format_value(value: Any) -> str:
    """Render a Python value as a filter literal.

    Raises:
        ValidationError: For unsupported types and non-finite floats
    """
    # bool first, it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Cannot use non-finite number in filter: {value}")
        return repr(value)
    if isinstance(value, str):
        return f"'{escape_filter_value(value)}'"
    if isinstance(value, datetime):
        return f"'{format_datetime(value)}'"
    raise ValidationError(
        f"Unsupported filter value type: {type(value).__name__}"
    )


def bind_filter(raw: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Substitute ``{:name}`` placeholders with escaped literals.

    Placeholders without a matching parameter are left untouched.

    Example:
        >>> bind_filter("views > {:min} && active = {:active}", {"min": 5, "active": True})
        'views > 5 && active = true'
    """
    if not params:
        return raw

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in params:
            return match.group(0)
        return format_value(params[name])

    return _PLACEHOLDER_RE.sub(_replace, raw)


class FilterNode:
    """Base class for filter expression nodes."""

    def render(self, nested: bool = False) -> str:
        raise NotImplementedError

    def __and__(self, other: "FilterNode") -> "And":
        return And(self, other)

    def __or__(self, other: "FilterNode") -> "Or":
        return Or(self, other)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Predicate(FilterNode):
    """A single ``field OPERATOR value`` comparison."""

    field: str
    op: Operator
    value: Any

    def __post_init__(self):
        if not isinstance(self.field, str) or not self.field.strip():
            raise ValidationError("Filter field name must be a non-empty string")
        if not isinstance(self.op, Operator):
            try:
                object.__setattr__(self, "op", Operator(self.op))
            except ValueError:
                raise ValidationError(f"Unknown filter operator: {self.op!r}") from None

    def render(self, nested: bool = False) -> str:
        return f"{self.field} {self.op.value} {format_value(self.value)}"


@dataclass(frozen=True)
class RawFilter(FilterNode):
    """A pre-built filter expression rendered verbatim."""

    expression: str

    def __post_init__(self):
        if not self.expression.strip():
            raise ValidationError("Raw filter expression must not be empty")

    def render(self, nested: bool = False) -> str:
        return f"({self.expression})" if nested else self.expression


class _Group(FilterNode):
    joiner = ""

    def __init__(self, *children: FilterNode):
        if not children:
            raise ValidationError(f"{type(self).__name__} group must not be empty")
        for child in children:
            if not isinstance(child, FilterNode):
                raise ValidationError(
                    f"Filter group members must be filter nodes, got {type(child).__name__}"
                )
        self.children: Tuple[FilterNode, ...] = tuple(children)

    def render(self, nested: bool = False) -> str:
        inner = self.joiner.join(child.render(nested=True) for child in self.children)
        return f"({inner})" if nested else inner

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.children == other.children  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.children))

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.children!r}"


class And(_Group):
    """Children joined with ``&&``. Nested groups are parenthesized."""

    joiner = " && "


class Or(_Group):
    """Children joined with ``||``. Nested groups are parenthesized."""

    joiner = " || "


class Field:
    """Helper for building predicates and sort fields on one field."""

    def __init__(self, name: str):
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Field name must be a non-empty string")
        self.name = name

    def eq(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.EQ, value)

    def ne(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.NE, value)

    def gt(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.GT, value)

    def gte(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.GTE, value)

    def lt(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.LT, value)

    def lte(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.LTE, value)

    def like(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.LIKE, value)

    def not_like(self, value: Any) -> Predicate:
        return Predicate(self.name, Operator.NOT_LIKE, value)

    def asc(self) -> "SortField":
        return SortField(self.name, Direction.ASC)

    def desc(self) -> "SortField":
        return SortField(self.name, Direction.DESC)


@dataclass(frozen=True)
class SortField:
    field: str
    direction: Direction = Direction.ASC

    def __post_init__(self):
        if not isinstance(self.field, str) or not self.field.strip():
            raise ValidationError("Sort field name must be a non-empty string")

    @classmethod
    def parse(cls, text: str) -> "SortField":
        """Parse ``-created`` / ``+title`` / ``title`` notation."""
        text = text.strip()
        if text.startswith("-"):
            return cls(text[1:], Direction.DESC)
        if text.startswith("+"):
            return cls(text[1:], Direction.ASC)
        return cls(text, Direction.ASC)

    def render(self) -> str:
        return f"-{self.field}" if self.direction is Direction.DESC else self.field


FilterLike = Union[FilterNode, str, None]


@dataclass(frozen=True)
class QuerySpec:
    """Immutable description of one list query.

    Sequences are normalized to tuples; sort entries may be ``SortField``
    instances or ``"-field"`` strings. ``extra`` accepts a mapping or
    ``(name, value)`` pairs and is stored as a tuple of pairs in the given
    order, so specs are hashable.
    """

    filter: FilterLike = None
    sort: Tuple[SortField, ...] = ()
    expand: Tuple[str, ...] = ()
    page: Optional[int] = None
    per_page: Optional[int] = None
    fields: Tuple[str, ...] = ()
    skip_total: bool = False
    extra: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "sort", _normalize_sort(self.sort))
        object.__setattr__(self, "expand", _as_tuple(self.expand))
        object.__setattr__(self, "fields", _as_tuple(self.fields))
        object.__setattr__(self, "extra", _normalize_extra(self.extra))

    def replace(self, **changes: Any) -> "QuerySpec":
        return dataclasses.replace(self, **changes)


def _as_tuple(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _normalize_extra(value: Any) -> Tuple[Tuple[str, str], ...]:
    if not value:
        return ()
    pairs = value.items() if isinstance(value, Mapping) else value
    result = []
    for pair in pairs:
        try:
            key, item = pair
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid extra query parameter: {pair!r}") from None
        result.append((str(key), str(item)))
    return tuple(result)


def _normalize_sort(value: Any) -> Tuple[SortField, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, SortField)):
        value = (value,)
    result = []
    for item in value:
        if isinstance(item, SortField):
            result.append(item)
        elif isinstance(item, str):
            result.append(SortField.parse(item))
        else:
            raise ValidationError(f"Invalid sort entry: {item!r}")
    return tuple(result)


def _validate_positive(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")


def render_filter(filter_value: FilterLike) -> Optional[str]:
    """Render a filter tree or raw string, or None when there is no filter."""
    if filter_value is None:
        return None
    if isinstance(filter_value, str):
        return filter_value if filter_value.strip() else None
    if isinstance(filter_value, FilterNode):
        return filter_value.render()
    raise ValidationError(f"Invalid filter: {filter_value!r}")


def to_params(spec: QuerySpec) -> List[Tuple[str, str]]:
    """Build the ordered (name, value) parameter list for a spec.

    Raises:
        ValidationError: If paging is not positive or the filter is malformed
    """
    _validate_positive("page", spec.page)
    _validate_positive("perPage", spec.per_page)

    params: List[Tuple[str, str]] = []
    if spec.page is not None:
        params.append(("page", str(spec.page)))
    if spec.per_page is not None:
        params.append(("perPage", str(spec.per_page)))
    if spec.sort:
        params.append(("sort", ",".join(s.render() for s in spec.sort)))

    filter_text = render_filter(spec.filter)
    if filter_text is not None:
        params.append(("filter", filter_text))

    if spec.expand:
        paths: List[str] = []
        for path in spec.expand:
            if not path or not path.strip():
                raise ValidationError("Expand paths must be non-empty")
            if path not in paths:
                paths.append(path)
        params.append(("expand", ",".join(paths)))
    if spec.fields:
        params.append(("fields", ",".join(spec.fields)))
    if spec.skip_total:
        params.append(("skipTotal", "true"))

    params.extend(spec.extra)
    return params


def encode_params(params: Iterable[Tuple[str, str]]) -> str:
    """URL-encode parameters, spaces as %20."""
    return "&".join(
        f"{quote(name, safe='')}={quote(value, safe='')}" for name, value in params
    )


def render(spec: QuerySpec) -> str:
    """Render a QuerySpec to a URL query string (without leading ``?``)."""
    return encode_params(to_params(spec))
