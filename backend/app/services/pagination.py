import math

from sqlalchemy.orm import Query


def paginate(query: Query, page: int, limit: int) -> dict:
    """Return one page of ``query`` as ``{"meta": ..., "data": [...]}`` (pages start at 1)."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
        "data": items,
    }
