"""
Journey Map Platform
Blueprint package and shared request helpers.
"""

from flask import request


def pagination_args(default_limit=200, max_limit=1000):
    """Parse limit/offset query parameters.

    Query params:
        limit  : max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset
