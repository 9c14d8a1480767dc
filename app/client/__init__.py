"""Async client SDK for the helpdesk backend.

Runs outside of any Flask application context.
"""
from app.client.auth_client import AuthClient, AuthError, AuthEvent, Session, Subscription
from app.client.bootstrap import BootstrapState, SessionBootstrap, SessionContext
from app.client.race import first_settled

__all__ = [
    'AuthClient', 'AuthError', 'AuthEvent', 'Session', 'Subscription',
    'BootstrapState', 'SessionBootstrap', 'SessionContext',
    'first_settled',
]
