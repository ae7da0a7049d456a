# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g


def require_operator(f):
    """
    Require an operator identity and expose it as g.operator.

    Authentication itself lives outside this service: the identity arrives as
    an opaque string in the X-Operator header and is only recorded (as
    created_by on ledger rows and user_id on system logs). DEFAULT_OPERATOR
    fills in when configured.

    Returns 401 when no identity is available.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator = (request.headers.get("X-Operator") or "").strip()
        if not operator:
            operator = current_app.config.get("DEFAULT_OPERATOR") or ""

        if not operator:
            return jsonify({"error": "Authentication required"}), 401

        g.operator = operator[:128]
        return f(*args, **kwargs)

    return decorated_function
