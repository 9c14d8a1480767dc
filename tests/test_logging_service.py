"""Tests for the audit trail helpers."""
import pytest

from app import db
from app.models import AuditImportance, AuditLog
from app.services.logging_service import log_change, log_event, log_security


def test_helpers_set_importance(ctx, make_profile):
    profile = make_profile()

    log_change('tickets', 'ticket_created', 'VPN down', entity_type='Ticket', entity_id=1, user_id=profile.id)
    log_security('auth', 'login_failed', profile.email)
    db.session.commit()

    entries = {e.action: e for e in AuditLog.query.all()}
    assert entries['ticket_created'].importance == AuditImportance.MEDIUM.value
    assert entries['ticket_created'].user_id == profile.id
    assert entries['login_failed'].importance == AuditImportance.HIGH.value
    assert entries['login_failed'].user_id is None
    assert entries['login_failed'].ip_address is None


def test_request_fills_client_address(ctx):
    with ctx.test_request_context(environ_base={'REMOTE_ADDR': '10.0.0.7'}):
        entry = log_event('auth', 'logout')

    assert entry.ip_address == '10.0.0.7'
    assert entry.importance == AuditImportance.LOW.value


@pytest.mark.parametrize('module,importance', [
    ('billing', 'low'),
    ('auth', 'critical'),
])
def test_unknown_module_or_importance(ctx, module, importance):
    with pytest.raises(ValueError):
        log_event(module, 'login', importance=importance)
