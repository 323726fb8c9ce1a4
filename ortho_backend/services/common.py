"""
Shared query helpers for the service layer
"""
import math
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Query


def paginate(query: Query, page: int = 1, limit: int = 20) -> Tuple[List[Any], Dict[str, int]]:
    """Apply offset/limit and return (items, pagination)"""
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def apply_updates(obj: Any, updates: Dict[str, Any]) -> List[str]:
    """Set non-None values from a dict onto an ORM object; return changed keys"""
    changed = []
    for key, value in updates.items():
        if value is None or not hasattr(obj, key):
            continue
        if getattr(obj, key) != value:
            setattr(obj, key, value)
            changed.append(key)
    return changed
