"""Telegram notifications for ticket events.

Two call paths lead to the same dispatcher:

- the ``send-telegram-notification`` function endpoint, which accepts an
  optional explicit ``chat_ids`` list and falls back to all opted-in users
- ``NotificationService.send_notification``, used by the ticket service
  after a write. It resolves recipients itself (one user or everybody) and
  hands the dispatcher an explicit list.

The fan-out sends one message per chat id concurrently. A failed send is
counted, never raised.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import NotificationRequestError, RecipientLookupError, TicketLookupError
from app.models import Ticket, UserSettings, NotificationType
from app.services.background import DetachedTask, run_detached
from app.services.telegram_service import TelegramClient

logger = logging.getLogger(__name__)


NOTIFICATION_HEADERS = {
    NotificationType.TICKET_CREATED.value: '🆕 *New Ticket Created!*',
    NotificationType.TICKET_ASSIGNED.value: '📤 *Ticket Assigned!*',
    NotificationType.TICKET_UPDATED.value: '✏️ *Ticket Updated!*',
    NotificationType.TICKET_COMMENT.value: '💬 *New Comment on Ticket!*',
}


@dataclass
class NotificationRequest:
    """Ephemeral notification request, never persisted."""
    type: Optional[str]
    ticket_id: int
    message: str
    chat_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: dict) -> 'NotificationRequest':
        """Build a request from a JSON body.

        Raises:
            NotificationRequestError: ticket_id or message missing
        """
        payload = payload or {}
        ticket_id = payload.get('ticket_id')
        message = payload.get('message')
        if not ticket_id or not message:
            raise NotificationRequestError()

        chat_ids = payload.get('chat_ids') or []
        if not isinstance(chat_ids, list):
            chat_ids = [chat_ids]

        return cls(
            type=payload.get('type'),
            ticket_id=ticket_id,
            message=str(message),
            chat_ids=[str(c) for c in chat_ids if c]
        )


@dataclass
class DispatchResult:
    """Outcome of one fan-out."""
    sent: int = 0
    failed: int = 0
    total: int = 0
    message: Optional[str] = None

    def to_dict(self) -> dict:
        if self.total == 0:
            return {'success': True, 'message': self.message or 'No recipients found', 'sent': 0}
        return {
            'success': True,
            'sent': self.sent,
            'failed': self.failed,
            'total': self.total,
        }


class RecipientResolver:
    """Maps a notification to Telegram chat ids.

    A profile is a recipient iff Telegram notifications are enabled, the
    account is connected and a chat id is stored.
    """

    @staticmethod
    def _opted_in():
        return UserSettings.query.filter(
            UserSettings.telegram_notifications.is_(True),
            UserSettings.telegram_is_connected.is_(True),
            UserSettings.telegram_chat_id.isnot(None)
        )

    def resolve_for_user(self, profile_id: int) -> Optional[str]:
        """Return the chat id of one profile, or None if it does not qualify."""
        try:
            settings = self._opted_in().filter(UserSettings.user_id == profile_id).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f'Error fetching notification settings: {e}')
            raise RecipientLookupError() from e
        return settings.telegram_chat_id if settings else None

    def resolve_all(self) -> List[str]:
        """Return the chat ids of every opted-in profile."""
        try:
            rows = self._opted_in().with_entities(UserSettings.telegram_chat_id).all()
        except SQLAlchemyError as e:
            current_app.logger.error(f'Error fetching user chat IDs: {e}')
            raise RecipientLookupError() from e
        return [row.telegram_chat_id for row in rows]


def render_notification(notification_type: Optional[str], ticket: Ticket, message: str,
                        frontend_url: str) -> str:
    """Render the Markdown text sent to Telegram."""
    ticket_url = f"{frontend_url.rstrip('/')}/tickets/{ticket.id}"

    text = (
        "🔔 *Ticket Update Notification*\n\n"
        f"🎫 *Title:* {ticket.title or 'Untitled'}\n"
        f"📌 *Status:* {ticket.status or 'N/A'}\n"
        f"📍 *Base:* {ticket.base_name or 'N/A'}\n"
        f"🔥 *Priority:* {ticket.priority or 'N/A'}\n"
        f"👤 *Created by:* {ticket.creator_name or 'Unknown'}\n"
        f"👥 *Assigned to:* {ticket.assignee_name or 'Unassigned'}\n"
    )

    header = NOTIFICATION_HEADERS.get(notification_type)
    if header:
        text = f"{header}\n\n{text}"

    text += f"\n📝 *Details:*\n{message}\n\n🔗 [Open Ticket]({ticket_url})"
    return text


class NotificationDispatcher:
    """Resolves, renders and fans out one notification request."""

    def __init__(self, client: TelegramClient, resolver: RecipientResolver = None,
                 frontend_url: str = 'http://localhost:5173'):
        self.client = client
        self.resolver = resolver or RecipientResolver()
        self.frontend_url = frontend_url

    @classmethod
    def from_app(cls, app) -> 'NotificationDispatcher':
        return cls(
            client=TelegramClient.from_app(app),
            frontend_url=app.config.get('FRONTEND_URL', 'http://localhost:5173')
        )

    def _load_ticket(self, ticket_id) -> Ticket:
        try:
            ticket = db.session.get(Ticket, int(ticket_id))
        except (TypeError, ValueError, SQLAlchemyError) as e:
            current_app.logger.error(f'Error fetching ticket details: {e}')
            raise TicketLookupError() from e
        if ticket is None:
            current_app.logger.error(f'Error fetching ticket details: ticket {ticket_id} not found')
            raise TicketLookupError()
        return ticket

    def dispatch(self, request: NotificationRequest) -> DispatchResult:
        """
        Send the request to all its recipients.

        Returns:
            DispatchResult with sent/failed/total counts

        Raises:
            RecipientLookupError: The opted-in users could not be loaded
            TicketLookupError: The ticket does not exist or could not be loaded
        """
        chat_ids = request.chat_ids or self.resolver.resolve_all()
        # Same chat id twice in one request gets one message
        chat_ids = list(dict.fromkeys(chat_ids))

        if not chat_ids:
            current_app.logger.info('No recipients found for Telegram notification')
            return DispatchResult()

        ticket = self._load_ticket(request.ticket_id)
        text = render_notification(request.type, ticket, request.message, self.frontend_url)

        result = asyncio.run(self._fan_out(chat_ids, text))
        current_app.logger.info(
            f'Notification {request.type} for ticket {ticket.id}: '
            f'{result.sent}/{result.total} sent, {result.failed} failed'
        )
        return result

    async def _fan_out(self, chat_ids: List[str], text: str) -> DispatchResult:
        async with self.client.open() as http:
            outcomes = await asyncio.gather(
                *(self.client.send_message(chat_id, text, http=http) for chat_id in chat_ids),
                return_exceptions=True
            )

        result = DispatchResult(total=len(chat_ids))
        for chat_id, outcome in zip(chat_ids, outcomes):
            if isinstance(outcome, Exception):
                result.failed += 1
                logger.warning(f'Telegram send to {chat_id} failed: {outcome}')
            else:
                result.sent += 1
        return result


class NotificationService:
    """Notification call path used by the data-access layer."""

    def __init__(self, dispatcher: NotificationDispatcher = None, resolver: RecipientResolver = None):
        self._dispatcher = dispatcher
        self.resolver = resolver or RecipientResolver()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = NotificationDispatcher.from_app(current_app)
        return self._dispatcher

    def send_notification(self, notification_type: str, ticket_id: int, message: str,
                          target_user_id: int = None) -> dict:
        """
        Notify one profile, or every opted-in profile.

        Returns:
            ``{'success': True, 'recipients': 0}`` when nobody qualifies,
            otherwise ``{'success': True, 'recipients': n, 'data': {...}}``
        """
        if target_user_id:
            chat_id = self.resolver.resolve_for_user(target_user_id)
            chat_ids = [chat_id] if chat_id else []
        else:
            chat_ids = self.resolver.resolve_all()

        if not chat_ids:
            current_app.logger.info('No recipients found for Telegram notification')
            return {'success': True, 'recipients': 0}

        request = NotificationRequest(
            type=notification_type,
            ticket_id=ticket_id,
            message=message,
            chat_ids=chat_ids
        )
        result = self.dispatcher.dispatch(request)
        return {'success': True, 'recipients': len(chat_ids), 'data': result.to_dict()}

    def notify_detached(self, notification_type: str, ticket_id: int, message: str,
                        target_user_id: int = None) -> DetachedTask:
        """Send a notification without blocking or failing the caller."""
        return run_detached(
            self.send_notification,
            notification_type, ticket_id, message, target_user_id,
            name=f'notify:{notification_type}:{ticket_id}'
        )
