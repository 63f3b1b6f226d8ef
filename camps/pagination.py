import math


def paginate(qs, page: int = 1, limit: int = 12):
    """Slice ``qs`` and return ``(items, meta)`` in the shape the frontend expects."""
    total = qs.count()
    start = (page - 1) * limit
    items = list(qs[start:start + limit])
    return items, {'total': total, 'page': page, 'limit': limit, 'totalPages': math.ceil(total / limit) if limit else 0}
