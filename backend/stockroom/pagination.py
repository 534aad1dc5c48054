# Overview: Offset pagination shared by list endpoints.

from __future__ import annotations

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def paginate(query, *, page: int | None = None, limit: int | None = None, serializer=None) -> dict:
    """
    Page through a SQLAlchemy query.

    Returns {"data": [...], "pagination": {"total", "page", "pages", "limit"}}.
    page and limit are clamped to sane bounds rather than rejected.
    """
    page = max(1, int(page or 1))
    limit = max(1, min(MAX_LIMIT, int(limit or DEFAULT_LIMIT)))

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    serializer = serializer or (lambda obj: obj.to_dict())

    return {
        "data": [serializer(item) for item in items],
        "pagination": {
            "total": total,
            "page": page,
            "pages": (total + limit - 1) // limit,
            "limit": limit,
        },
    }
