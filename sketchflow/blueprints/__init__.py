"""
SketchFlow
Blueprint registry.
"""

from flask import jsonify, request

from sketchflow.utils.helpers import page_payload, parse_pagination


def list_response(fetch, *args):
    """Run a paginated service read and shape it as ``{items, total, page, limit}``.

    ``fetch`` is called as ``fetch(*args, filters, page, limit)`` and must
    return ``(items, total)`` where each item has ``to_dict()``.
    """
    page, limit = parse_pagination(request.args)
    items, total = fetch(*args, request.args.to_dict(), page, limit)
    return jsonify(page_payload([item.to_dict() for item in items], total, page, limit))
