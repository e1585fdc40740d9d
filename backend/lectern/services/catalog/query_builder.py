"""
Lectern Catalog Query Builder.

Turns raw listing parameters into a ``VideoQuery``: a tuple of structured
predicates plus ordering and a pagination window. Predicates always carry
their value as a bound parameter, so request input never becomes SQL text.

The same ``VideoQuery`` drives the row query and the COUNT query of a
listing, and the in-memory fixture store evaluates it directly.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func

from lectern.models.models import Video

PAGE_SIZES: Tuple[int, ...] = (24, 48, 96)
LEGACY_PAGE_SIZES: Dict[int, int] = {25: 24, 50: 48, 100: 96}
SHORT_RUNTIME_MINUTES = 20
LANGUAGE_RE = re.compile(r"^[a-z]{2}$")

SORT_COLUMNS: Dict[str, str] = {
    "date": "date",
    "clicks": "clicks",
    "views": "clicks",
}


@dataclass(frozen=True)
class Predicate:
    column: str
    operator: str
    value: Any
    case_insensitive: bool = False

    def clause(self):
        col = getattr(Video, self.column)
        if self.case_insensitive:
            col = func.lower(col)
        if self.operator == "eq":
            return col == self.value
        if self.operator == "lt":
            return col < self.value
        if self.operator == "ge":
            return col >= self.value
        raise ValueError(f"Unsupported operator: {self.operator}")

    def matches(self, row) -> bool:
        current = getattr(row, self.column, None)
        if current is None:
            return False
        if self.case_insensitive:
            current = str(current).lower()
        if self.operator == "eq":
            return current == self.value
        if self.operator == "lt":
            return current < self.value
        if self.operator == "ge":
            return current >= self.value
        raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass(frozen=True)
class VideoQuery:
    predicates: Tuple[Predicate, ...] = ()
    limit: int = PAGE_SIZES[0]
    offset: int = 0
    order: str = "date"
    page: int = 1

    def where_clauses(self):
        return [p.clause() for p in self.predicates]

    def matches(self, row) -> bool:
        return all(p.matches(row) for p in self.predicates)

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total > 0 else 0


@dataclass
class ListingOptions:
    preacher: Optional[str] = None
    category: Optional[str] = None
    search_category: Optional[str] = None
    language: Optional[str] = None
    length: Optional[str] = None
    page: Optional[str] = None
    limit: Optional[str] = None
    sort: Optional[str] = None
    extra: Tuple[Predicate, ...] = field(default_factory=tuple)


# ═══════════════════════════════════════════════════════════════════════
# Normalizers
# ═══════════════════════════════════════════════════════════════════════

def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_page(value: Any) -> int:
    page = _parse_int(value)
    return page if page and page > 0 else 1


def normalize_limit(value: Any, allowed: Tuple[int, ...] = PAGE_SIZES) -> int:
    limit = _parse_int(value)
    if limit in allowed:
        return limit
    legacy = LEGACY_PAGE_SIZES.get(limit) if limit is not None else None
    if legacy in allowed:
        return legacy
    return allowed[0]


def clamp_limit(value: Any, default: int, maximum: int) -> int:
    """Free-form limit for endpoints without a page-size allow-list."""
    limit = _parse_int(value)
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


def normalize_language(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    if value is None:
        return None
    value = value.lower()
    return value if LANGUAGE_RE.match(value) else None


def normalize_sort(value: Optional[str]) -> str:
    return SORT_COLUMNS.get((value or "").strip().lower(), "date")


def length_predicate(value: Optional[str]) -> Optional[Predicate]:
    value = (_clean(value) or "").lower()
    if value == "short":
        return Predicate("runtime_minutes", "lt", SHORT_RUNTIME_MINUTES)
    if value == "long":
        return Predicate("runtime_minutes", "ge", SHORT_RUNTIME_MINUTES)
    return None


# ═══════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════

def build_video_query(options: ListingOptions) -> VideoQuery:
    predicates = []

    preacher = _clean(options.preacher)
    if preacher:
        predicates.append(Predicate("vid_preacher", "eq", preacher))

    category = _clean(options.category)
    if category:
        predicates.append(Predicate("vid_category", "eq", category))

    search_category = _clean(options.search_category)
    if search_category:
        predicates.append(Predicate("search_category", "eq", search_category))

    language = normalize_language(options.language)
    if language:
        predicates.append(Predicate("language", "eq", language, case_insensitive=True))

    length = length_predicate(options.length)
    if length:
        predicates.append(length)

    predicates.extend(options.extra)

    page = normalize_page(options.page)
    limit = normalize_limit(options.limit)
    return VideoQuery(
        predicates=tuple(predicates),
        limit=limit,
        offset=(page - 1) * limit,
        order=normalize_sort(options.sort),
        page=page,
    )
