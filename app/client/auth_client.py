"""Async HTTP client for the helpdesk auth API.

Wraps ``/api/auth`` and ``/api/profiles`` with httpx and publishes auth
state transitions (``SIGNED_IN``, ``SIGNED_OUT``, ``TOKEN_REFRESHED``) to
subscribers. A session restored from a previous run is announced to a new
subscriber as ``SIGNED_IN`` on the next loop iteration.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import httpx

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Auth API unreachable or answered with an error."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthEvent(str, Enum):
    SIGNED_IN = 'SIGNED_IN'
    SIGNED_OUT = 'SIGNED_OUT'
    TOKEN_REFRESHED = 'TOKEN_REFRESHED'


@dataclass
class Session:
    """Authenticated session as reported by ``GET /api/auth/session``."""
    user: dict
    expires_at: int

    @property
    def user_id(self) -> int:
        return self.user['id']

    def is_expired(self, now: float = None) -> bool:
        return self.expires_at <= (now if now is not None else time.time())

    @classmethod
    def from_json(cls, data: Optional[dict]) -> Optional['Session']:
        if not data or not data.get('user'):
            return None
        return cls(user=data['user'], expires_at=int(data.get('expires_at') or 0))


AuthCallback = Callable[[AuthEvent, Optional[Session]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, listeners: List[AuthCallback], callback: AuthCallback):
        self._listeners = listeners
        self.callback = callback

    @property
    def active(self) -> bool:
        return self.callback in self._listeners

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.callback in self._listeners:
            self._listeners.remove(self.callback)


class AuthClient:
    """Client for the session-cookie based auth API."""

    def __init__(self, base_url: str, timeout: float = 10,
                 transport: httpx.AsyncBaseTransport = None):
        """
        Initialize client.

        Args:
            base_url: Root URL of the helpdesk backend
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport = transport
        self.session: Optional[Session] = None
        self._listeners: List[AuthCallback] = []
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # Events

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        """Register callback(event, session) for auth state transitions."""
        self._listeners.append(callback)
        subscription = Subscription(self._listeners, callback)

        if self.session is not None:
            restored = self.session
            asyncio.get_running_loop().call_soon(self._notify, callback, AuthEvent.SIGNED_IN, restored)
        return subscription

    def _notify(self, callback: AuthCallback, event: AuthEvent, session: Optional[Session]) -> None:
        if callback not in self._listeners:
            return
        try:
            callback(event, session)
        except Exception as e:
            logger.exception(f'Auth listener failed on {event.value}: {e}')

    def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for callback in list(self._listeners):
            self._notify(callback, event, session)

    # HTTP

    async def _request(self, method: str, path: str, json: dict = None) -> dict:
        try:
            response = await self.http.request(method, path, json=json)
        except httpx.RequestError as e:
            logger.error(f'Auth API request {method} {path} failed: {e}')
            raise AuthError(f'Request failed: {e}') from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = data.get('error') if isinstance(data, dict) else None
            raise AuthError(message or f'HTTP {response.status_code}', response.status_code)
        return data

    async def sign_up(self, email: str, password: str, full_name: str, base_ids: list = None) -> Session:
        data = await self._request('POST', '/api/auth/signup', json={
            'email': email,
            'password': password,
            'full_name': full_name,
            'base_ids': base_ids or [],
        })
        self.session = Session.from_json(data.get('session'))
        self._emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self._request('POST', '/api/auth/login', json={
            'email': email,
            'password': password,
        })
        self.session = Session.from_json(data.get('session'))
        self._emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def sign_out(self) -> None:
        try:
            await self._request('POST', '/api/auth/logout')
        finally:
            self.clear_local_session()
            self._emit(AuthEvent.SIGNED_OUT, None)

    async def refresh_session(self) -> Session:
        data = await self._request('POST', '/api/auth/refresh')
        self.session = Session.from_json(data.get('session'))
        self._emit(AuthEvent.TOKEN_REFRESHED, self.session)
        return self.session

    async def get_session(self) -> Optional[Session]:
        """Ask the server for the current session (None if signed out)."""
        data = await self._request('GET', '/api/auth/session')
        self.session = Session.from_json(data.get('session'))
        return self.session

    async def fetch_profile(self, user_id: int) -> dict:
        data = await self._request('GET', f'/api/profiles/{user_id}')
        return data.get('profile')

    async def update_profile(self, full_name: str) -> dict:
        data = await self._request('PATCH', '/api/profiles/me', json={'full_name': full_name})
        return data.get('profile')

    async def reset_password(self, email: str) -> None:
        await self._request('POST', '/api/auth/reset-password', json={'email': email})

    def clear_local_session(self) -> None:
        """Forget the cached session and cookies without calling the server."""
        self.session = None
        if self._http is not None:
            self._http.cookies.clear()
