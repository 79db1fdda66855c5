# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_customer(f):
    """
    Require the customer identity forwarded by the upstream auth layer.

    Sets g.customer_id from the X-Customer-Id header; returns 401 if the
    header is missing or not an integer. Authentication itself happens
    before requests reach this service.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-Customer-Id") or "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        if not raw.isdigit():
            return jsonify({"error": "Invalid customer identity"}), 401

        g.customer_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
