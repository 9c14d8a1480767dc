"""Telegram Bot API client.

Sends notification messages and looks up chat ids of users who messaged
the bot. Runs outside of the Flask app context as well, so it logs via
the module logger.
"""
import logging
from typing import Optional

import httpx

from app.errors import HelpdeskError, TelegramError

logger = logging.getLogger(__name__)


class TelegramConfigError(HelpdeskError):
    """Telegram bot token not configured"""
    status_code = 500


class TelegramClient:
    """Thin async wrapper around the Bot API methods we use."""

    def __init__(
        self,
        token: str,
        api_base: str = 'https://api.telegram.org',
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport = None
    ):
        """
        Initialize client.

        Args:
            token: Bot token
            api_base: API root URL
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        if not token:
            raise TelegramConfigError()
        self.token = token
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_app(cls, app) -> 'TelegramClient':
        """Build a client from the Flask config of app."""
        return cls(
            token=app.config.get('TELEGRAM_BOT_TOKEN'),
            api_base=app.config.get('TELEGRAM_API_BASE', 'https://api.telegram.org'),
            timeout=app.config.get('TELEGRAM_TIMEOUT', 10),
            transport=app.extensions.get('telegram_transport'),
        )

    def _url(self, method: str) -> str:
        return f"{self.api_base}/bot{self.token}/{method}"

    def open(self) -> httpx.AsyncClient:
        """Return a new AsyncClient; use as ``async with client.open() as http``."""
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def send_message(
        self,
        chat_id: str,
        text: str,
        http: httpx.AsyncClient = None
    ) -> dict:
        """
        Send a Markdown message to one chat.

        Args:
            chat_id: Target chat id
            text: Message text (Markdown)
            http: Shared AsyncClient for batch sends; a new one is opened if None

        Returns:
            Parsed API response

        Raises:
            TelegramError: On transport errors or a non-2xx response
        """
        payload = {
            'chat_id': chat_id,
            'text': text,
            'parse_mode': 'Markdown',
            'disable_web_page_preview': False,
        }

        if http is None:
            async with self.open() as own_http:
                return await self._post(own_http, 'sendMessage', payload, chat_id)
        return await self._post(http, 'sendMessage', payload, chat_id)

    async def _post(self, http: httpx.AsyncClient, method: str, payload: dict, chat_id) -> dict:
        try:
            response = await http.post(self._url(method), json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout sending message to {chat_id}")
            raise TelegramError(f"Request timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            raise TelegramError(f"Request failed: {str(e)}") from e

        if not response.is_success:
            logger.error(f"Failed to send message to {chat_id}: {response.text}")
            raise TelegramError(response.text)

        return response.json()

    async def get_updates(self) -> list:
        """
        Fetch recent updates received by the bot.

        Returns:
            List of update dicts (empty if the API returned none)

        Raises:
            TelegramError: On transport errors or a non-2xx response
        """
        try:
            async with self.open() as http:
                response = await http.get(self._url('getUpdates'))
        except httpx.RequestError as e:
            logger.error(f"Telegram API error: {e}")
            raise TelegramError() from e

        if not response.is_success:
            logger.error(f"Telegram API error: {response.text}")
            raise TelegramError()

        result = response.json().get('result')
        return result if isinstance(result, list) else []

    @staticmethod
    def find_chat_id(updates: list, username: str) -> Optional[str]:
        """
        Find the chat id of the last message sent by username.

        Matching is case-insensitive and ignores a leading '@'.

        Returns:
            Chat id as string, or None if the user never messaged the bot
        """
        clean = normalize_username(username).lower()
        chat_id = None
        for update in updates:
            message = (update or {}).get('message') or {}
            sender = message.get('from') or {}
            sender_name = sender.get('username')
            if sender_name and sender_name.lower() == clean:
                chat_id = str(message['chat']['id'])
        return chat_id


def normalize_username(username: str) -> str:
    """Strip whitespace and a leading '@'."""
    username = (username or '').strip()
    return username[1:] if username.startswith('@') else username
