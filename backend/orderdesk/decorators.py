# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def require_auth(f):
    """
    Require a bearer session token and establish the company context.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.company_id: tenant of the session (immutable for its lifetime)
    - g.user_grade: the user's grade ("온라인" switches confirm behavior)
    - g.session_context: the full SessionContext

    Returns 401 for a missing, invalid, expired or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.company_id = context.company_id
        g.user_grade = context.grade
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
