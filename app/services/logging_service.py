"""Audit trail for helpdesk events.

Rows go to the ``audit_log`` table next to the regular application log.
Callers add the entry inside their own transaction and commit it together
with the change it describes.
"""
from typing import Optional

from flask import has_request_context, request
from flask_login import current_user

from app import db
from app.models import AuditImportance, AuditLog


def _request_origin(user_id: Optional[int]):
    """Fill in acting profile and client address from the current request."""
    if not has_request_context():
        return user_id, None
    if user_id is None and current_user.is_authenticated:
        user_id = current_user.id
    return user_id, request.remote_addr


def log_event(
    module: str,
    action: str,
    details: str = None,
    importance: str = AuditImportance.LOW.value,
    entity_type: str = None,
    entity_id: int = None,
    user_id: int = None
) -> AuditLog:
    """Add an audit entry to the session. The caller commits.

    Args:
        module: One of AuditLog.MODULES ('tickets', 'auth', 'settings', ...)
        action: Event code, e.g. 'ticket_assigned' or 'telegram_linked'
        details: Human-readable description
        importance: An AuditImportance value
        entity_type, entity_id: Affected record, e.g. ('Ticket', 42)
        user_id: Acting profile; defaults to the signed-in profile

    Raises:
        ValueError: Unknown module or importance
    """
    if module not in AuditLog.MODULES:
        raise ValueError(f'Unknown audit module: {module}')
    importance = AuditImportance(importance).value

    user_id, ip_address = _request_origin(user_id)
    entry = AuditLog(
        user_id=user_id,
        module=module,
        action=action,
        details=details,
        importance=importance,
        entity_type=entity_type,
        entity_id=entity_id,
        ip_address=ip_address
    )
    db.session.add(entry)
    return entry


def log_change(module: str, action: str, details: str = None, **kwargs) -> AuditLog:
    """Data changes: tickets, bases, memberships, Telegram links."""
    return log_event(module, action, details, importance=AuditImportance.MEDIUM.value, **kwargs)


def log_security(module: str, action: str, details: str = None, **kwargs) -> AuditLog:
    """Credential and permission events: failed logins, passwords, roles."""
    return log_event(module, action, details, importance=AuditImportance.HIGH.value, **kwargs)
