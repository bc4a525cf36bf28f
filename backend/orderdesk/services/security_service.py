# Overview: Security audit trail and tenant-ownership checks.

"""
Tenant isolation helpers.

Every authenticated request carries g.company_id. Resources addressed by
client-supplied identifiers are checked against it here, and every denied
attempt is written to the security_events table.
"""

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    company_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event.

    event_type examples:
    - LOGIN_FAILED
    - LOGOUT
    - CROSS_TENANT_ACCESS_DENIED
    - STAGED_FILE_ACCESS_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        company_id=company_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(event)
    db.session.commit()
    return event


def log_access_denied(
    event_type: str,
    reason: str,
    *,
    company_id: int | None,
    user_id: int | None,
) -> SecurityEvent:
    """Record a denied access, pulling client details from the request when there is one."""
    resource = action = ip_address = user_agent = None
    if has_request_context():
        resource = request.path
        action = request.method
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")
    return log_security_event(
        user_id=user_id,
        event_type=event_type,
        success=False,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        company_id=company_id,
    )
