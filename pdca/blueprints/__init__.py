"""
PDCA Action Tracker
Blueprint registry and shared request helpers.
"""

import logging

from flask import request

from pdca.core.exceptions import NotFoundError, PermissionDenied, StoreError, ValidationError
from pdca.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already loaded snapshot list.

    Query params:
        limit:  max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def register_error_handlers(bp):
    """Map the core exception hierarchy to JSON responses on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(StoreError)
    def _handle_store(error: StoreError):
        details = {"operation": error.operation}
        if error.completed is not None:
            details["completed"] = error.completed
        return api_error(E.STORE, "Store operation failed", details=details)

    return bp
