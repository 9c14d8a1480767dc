"""Session bootstrap for client applications.

On start the bootstrap subscribes to auth state changes first, then races
the first auth event against a fixed timer. If the timer wins, the session
is fetched once directly. Either way ``context.loading`` becomes False
exactly once; later events only update ``user`` and ``profile``.

Profile loading runs in the background with its own timeout and never
delays the end of loading. A failed or slow profile fetch leaves the user
signed in with ``profile=None``.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Set

from app.client.auth_client import AuthClient, AuthError, AuthEvent, Session, Subscription
from app.client.race import first_settled

logger = logging.getLogger(__name__)


class BootstrapState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    AUTHENTICATED = 'authenticated'
    UNAUTHENTICATED = 'unauthenticated'


class SessionContext:
    """Identity and authorization state shared with the rest of the app.

    Owned by the SessionBootstrap; consumers only read it and may register
    observers with ``watch``.
    """

    def __init__(self):
        self.user: Optional[dict] = None
        self.profile: Optional[dict] = None
        self.loading = True
        self._watchers: List[Callable[[str], None]] = []

    def watch(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Call callback('user' | 'profile' | 'loading') on every change.

        Returns:
            Function that removes the watcher
        """
        self._watchers.append(callback)

        def unwatch():
            if callback in self._watchers:
                self._watchers.remove(callback)
        return unwatch

    def _set(self, name: str, value) -> None:
        setattr(self, name, value)
        for callback in list(self._watchers):
            try:
                callback(name)
            except Exception as e:
                logger.exception(f'Session watcher failed on {name}: {e}')

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def role(self) -> Optional[str]:
        return (self.profile or {}).get('role')

    @property
    def base_ids(self) -> List[int]:
        return [base['id'] for base in (self.profile or {}).get('bases') or []]

    def has_role(self, role: str) -> bool:
        return self.role == role

    def has_any_role(self, roles) -> bool:
        return self.role in roles

    def can_access_base(self, base_id: int) -> bool:
        if not self.profile:
            return False
        if self.role == 'Admin':
            return True
        return base_id in self.base_ids

    def can_manage_tickets(self) -> bool:
        return self.has_any_role(['Admin', 'HIS'])

    def can_view_all_tickets(self) -> bool:
        return self.has_role('Admin')


class SessionBootstrap:
    """Single-use coordinator that brings a SessionContext out of loading."""

    def __init__(self, auth_client: AuthClient, timeout: float = 3.0, profile_timeout: float = 5.0):
        """
        Args:
            auth_client: Client whose events and session drive the context
            timeout: Seconds to wait for a first auth event before the
                direct session fetch
            profile_timeout: Seconds a background profile fetch may take
        """
        self.auth = auth_client
        self.timeout = timeout
        self.profile_timeout = profile_timeout
        self.context = SessionContext()
        self.state = BootstrapState.UNINITIALIZED
        self._subscription: Optional[Subscription] = None
        self._first_event: Optional[asyncio.Future] = None
        self._race: Optional[asyncio.Task] = None
        self._profile_tasks: Set[asyncio.Task] = set()
        self._profile_user_id = None
        self._event_count = 0
        self.fallback_used = False

    @property
    def loading(self) -> bool:
        return self.context.loading

    async def start(self) -> None:
        """Run the bootstrap. A second call while or after it ran is a no-op."""
        if self.state != BootstrapState.UNINITIALIZED:
            return
        self.state = BootstrapState.INITIALIZING

        loop = asyncio.get_running_loop()
        self._first_event = loop.create_future()
        # Subscribe before any session query so no event is missed
        self._subscription = self.auth.on_auth_state_change(self._on_auth_event)

        self._race = asyncio.ensure_future(
            first_settled(self._first_event, self._timer())
        )
        try:
            winner = await self._race
        except asyncio.CancelledError:
            # close() during start
            return

        if winner == 'timeout':
            await self._fallback_session_fetch()
        self._finish_loading()

    async def _timer(self) -> str:
        await asyncio.sleep(self.timeout)
        return 'timeout'

    async def _fallback_session_fetch(self) -> None:
        self.fallback_used = True
        logger.info(f'No auth event after {self.timeout}s, fetching session directly')
        seen = self._event_count
        try:
            session = await self.auth.get_session()
        except AuthError as e:
            error = e
            session = None
        else:
            error = None

        # An auth event arrived during the fetch and already set the identity
        if self._event_count != seen:
            logger.debug('Auth event arrived during session fetch, dropping fetched session')
            return
        if error is not None:
            logger.warning(f'Session fetch failed, signing out locally: {error}')
            self._sign_out_locally()
            return
        self._apply_session(session)

    def _on_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        logger.debug(f'Auth state changed: {event.value}')
        self._event_count += 1
        if event == AuthEvent.SIGNED_OUT:
            self._apply_session(None)
        else:
            self._apply_session(session)

        if self._first_event is not None and not self._first_event.done():
            self._first_event.set_result('event')

    def _apply_session(self, session: Optional[Session]) -> None:
        if session is None:
            self._set_unauthenticated()
            return
        if session.is_expired():
            logger.info('Session token expired, clearing local identity')
            self._sign_out_locally()
            return

        self.state = BootstrapState.AUTHENTICATED
        previous = self.context.user
        self.context._set('user', session.user)
        if previous is None or previous.get('id') != session.user_id or self.context.profile is None:
            self._load_profile_in_background(session.user_id)

    def _set_unauthenticated(self) -> None:
        self.state = BootstrapState.UNAUTHENTICATED
        self._profile_user_id = None
        if self.context.user is not None:
            self.context._set('user', None)
        if self.context.profile is not None:
            self.context._set('profile', None)

    def _sign_out_locally(self) -> None:
        self.auth.clear_local_session()
        self._set_unauthenticated()

    def _load_profile_in_background(self, user_id) -> None:
        self._profile_user_id = user_id
        task = asyncio.ensure_future(self._load_profile(user_id))
        self._profile_tasks.add(task)
        task.add_done_callback(self._profile_tasks.discard)

    async def _load_profile(self, user_id) -> None:
        try:
            profile = await asyncio.wait_for(self.auth.fetch_profile(user_id), self.profile_timeout)
        except asyncio.TimeoutError:
            logger.warning(f'Profile fetch for user {user_id} timed out after {self.profile_timeout}s')
            profile = None
        except Exception as e:
            logger.warning(f'Profile fetch for user {user_id} failed: {e}')
            profile = None

        # A newer sign-in or a sign-out happened meanwhile
        if self._profile_user_id != user_id:
            return
        self.context._set('profile', profile)

    def _finish_loading(self) -> None:
        if self.context.loading:
            self.context._set('loading', False)

    async def close(self) -> None:
        """Clear the pending timer and unsubscribe. Safe to call repeatedly."""
        if self._race is not None and not self._race.done():
            self._race.cancel()
        if self._subscription is not None:
            self._subscription.unsubscribe()
        for task in list(self._profile_tasks):
            task.cancel()
        if self._profile_tasks:
            await asyncio.gather(*self._profile_tasks, return_exceptions=True)
        self._profile_tasks.clear()
