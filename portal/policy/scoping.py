# portal/policy/scoping.py
"""
Query scoping: turns a principal plus request filters into a Mongo predicate
that can never match another tenant's private documents, and normalises
pagination/sort parameters for list endpoints.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from portal.policy.access import PUBLIC, Principal

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_SORT_FIELD = "created_at"


def tenant_clause(principal: Principal, public_readable: bool = True) -> Dict[str, Any]:
    tenant = principal.tenant
    clauses: List[Dict[str, Any]] = []
    if public_readable:
        clauses.append({"visibility": PUBLIC})
    if tenant is not None:
        clauses.append({"tenant_id": tenant})
    if not clauses:
        # no tenant and nothing public: match nothing
        return {"_id": {"$exists": False}}
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": clauses}


def scope_filter(principal: Principal, raw_filters: Optional[Mapping[str, Any]] = None,
                 public_readable: bool = True) -> Dict[str, Any]:
    raw = dict(raw_filters or {})
    if principal.is_super_admin:
        return raw
    clause = tenant_clause(principal, public_readable=public_readable)
    if not raw:
        return clause
    # $and keeps raw filters (including their own $or) from widening the tenant clause
    return {"$and": [clause, raw]}


def search_clause(search: Optional[str], fields: Sequence[str]) -> Optional[Dict[str, Any]]:
    text = (search or "").strip()
    if not text or not fields:
        return None
    pattern = re.escape(text)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def build_filters(search: Optional[str] = None,
                  search_fields: Sequence[str] = (),
                  exact: Optional[Mapping[str, Any]] = None,
                  date_range: Optional[Tuple[Optional[datetime], Optional[datetime]]] = None,
                  date_field: str = "created_at",
                  base: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Combine search text, exact-match filters and a date range into one predicate.

    Empty values ("" / None) are dropped so query-string defaults never filter.
    """
    out: Dict[str, Any] = dict(base or {})
    for key, value in (exact or {}).items():
        if value is None or value == "":
            continue
        out[key] = value
    if date_range:
        start, end = date_range
        rng: Dict[str, Any] = {}
        if start is not None:
            rng["$gte"] = start
        if end is not None:
            rng["$lte"] = end
        if rng:
            out[date_field] = rng
    clause = search_clause(search, search_fields)
    if clause:
        out.update(clause)
    return out


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_pagination(page: Any = None, limit: Any = None, default_limit: int = DEFAULT_LIMIT) -> PageRequest:
    p = max(1, _to_int(page, DEFAULT_PAGE))
    lim = _to_int(limit, default_limit)
    lim = min(MAX_LIMIT, max(1, lim))
    return PageRequest(page=p, limit=lim)


def parse_sort(sort_by: Optional[str], sort_order: Optional[str], allowed: Iterable[str]) -> List[Tuple[str, int]]:
    field = sort_by if sort_by in set(allowed) else DEFAULT_SORT_FIELD
    if field == DEFAULT_SORT_FIELD and sort_by != DEFAULT_SORT_FIELD:
        direction = -1
    else:
        direction = 1 if (sort_order or "").lower() == "asc" else -1
    return [(field, direction)]


def pagination_meta(page: PageRequest, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / page.limit) if page.limit else 0
    return {
        "currentPage": page.page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNext": page.page < total_pages,
        "hasPrev": page.page > 1,
    }
