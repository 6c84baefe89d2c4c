from flask import request

MAX_PER_PAGE = 100


def page_args(default_per_page=10):
    """Read ``page`` and ``limit`` from the query string."""
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = request.args.get('limit', default_per_page, type=int) or default_per_page
    return page, min(max(per_page, 1), MAX_PER_PAGE)


def paginated(pagination, serialize=lambda item: item.to_dict()):
    return {
        'data': [serialize(item) for item in pagination.items],
        'total': pagination.total,
        'pages': pagination.pages,
        'current_page': pagination.page,
        'per_page': pagination.per_page
    }
