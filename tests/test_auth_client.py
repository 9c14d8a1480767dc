"""Tests for AuthClient against a mocked backend."""
import asyncio
import json
import time

import httpx
import pytest

from app.client import AuthClient, AuthError, AuthEvent, Session

FUTURE = int(time.time()) + 3600
SESSION = {'user': {'id': 7, 'email': 'jane@example.com'}, 'expires_at': FUTURE}


class FakeBackend:
    """Answers /api/auth and /api/profiles requests."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        response = self.responses.get((request.method, request.url.path))
        if isinstance(response, Exception):
            raise response
        if response is None:
            return httpx.Response(404, json={'success': False, 'error': 'Not found'})
        status, payload = response
        return httpx.Response(status, json=payload)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_client(backend):
    def _make():
        return AuthClient('http://helpdesk.test/', transport=httpx.MockTransport(backend.handler))
    return _make


def test_sign_in_stores_session_and_emits(backend, make_client):
    backend.responses[('POST', '/api/auth/login')] = (200, {'success': True, 'session': SESSION})
    events = []

    async def scenario():
        client = make_client()
        client.on_auth_state_change(lambda event, session: events.append((event, session)))
        session = await client.sign_in('jane@example.com', 'secret123')
        await client.aclose()
        return client, session

    client, session = asyncio.run(scenario())

    assert session == Session(user=SESSION['user'], expires_at=FUTURE)
    assert client.session is session
    assert events == [(AuthEvent.SIGNED_IN, session)]
    assert backend.requests == [
        ('POST', '/api/auth/login', {'email': 'jane@example.com', 'password': 'secret123'})
    ]


def test_error_message_taken_from_body(backend, make_client):
    backend.responses[('POST', '/api/auth/login')] = (
        401, {'success': False, 'error': 'Invalid email or password'}
    )

    async def scenario():
        await make_client().sign_in('jane@example.com', 'wrong')

    with pytest.raises(AuthError) as exc:
        asyncio.run(scenario())

    assert exc.value.status_code == 401
    assert exc.value.message == 'Invalid email or password'


def test_network_failure_becomes_auth_error(backend, make_client):
    backend.responses[('GET', '/api/auth/session')] = httpx.ConnectError('connection refused')

    async def scenario():
        await make_client().get_session()

    with pytest.raises(AuthError) as exc:
        asyncio.run(scenario())

    assert exc.value.status_code is None


def test_sign_out_clears_session_even_on_server_error(backend, make_client):
    backend.responses[('POST', '/api/auth/logout')] = (500, {'success': False, 'error': 'Internal Server Error'})
    events = []

    async def scenario():
        client = make_client()
        client.session = Session.from_json(SESSION)
        client.on_auth_state_change(lambda event, session: events.append(event))
        await asyncio.sleep(0)
        with pytest.raises(AuthError):
            await client.sign_out()
        return client

    client = asyncio.run(scenario())

    assert client.session is None
    assert events == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]


def test_restored_session_announced_on_next_tick(make_client):
    events = []

    async def scenario():
        client = make_client()
        client.session = Session.from_json(SESSION)
        client.on_auth_state_change(lambda event, session: events.append(event))
        synchronous = list(events)
        await asyncio.sleep(0)
        return synchronous

    assert asyncio.run(scenario()) == []
    assert events == [AuthEvent.SIGNED_IN]


def test_unsubscribe_is_idempotent_and_stops_pending_event(make_client):
    events = []

    async def scenario():
        client = make_client()
        client.session = Session.from_json(SESSION)
        subscription = client.on_auth_state_change(lambda event, session: events.append(event))
        subscription.unsubscribe()
        subscription.unsubscribe()
        await asyncio.sleep(0)
        return subscription

    subscription = asyncio.run(scenario())

    assert not subscription.active
    assert events == []


def test_failing_listener_does_not_block_others(backend, make_client):
    backend.responses[('POST', '/api/auth/refresh')] = (200, {'success': True, 'session': SESSION})
    events = []

    def broken(event, session):
        raise RuntimeError('listener bug')

    async def scenario():
        client = make_client()
        client.on_auth_state_change(broken)
        client.on_auth_state_change(lambda event, session: events.append(event))
        await client.refresh_session()

    asyncio.run(scenario())

    assert events == [AuthEvent.TOKEN_REFRESHED]


def test_get_session_signed_out(backend, make_client):
    backend.responses[('GET', '/api/auth/session')] = (200, {'session': None})

    async def scenario():
        return await make_client().get_session()

    assert asyncio.run(scenario()) is None


def test_fetch_profile(backend, make_client):
    profile = {'id': 7, 'full_name': 'Jane Doe', 'role': 'User', 'bases': []}
    backend.responses[('GET', '/api/profiles/7')] = (200, {'success': True, 'profile': profile})

    async def scenario():
        return await make_client().fetch_profile(7)

    assert asyncio.run(scenario()) == profile


def test_session_expiry():
    session = Session(user={'id': 1}, expires_at=100)
    assert session.is_expired(now=100)
    assert not session.is_expired(now=99)
    assert Session.from_json({'user': None, 'expires_at': 1}) is None
