"""User settings and Telegram account linking.

Settings rows are created lazily on first access. Callers always see the
nested ``{notifications, security, telegram}`` structure.

Telegram linking follows ``unlinked -> pending -> linked``:

- ``request_telegram_link`` stores the handle (pending)
- ``verify_telegram_link`` looks the handle up in the bot's updates and
  either links the account or leaves it pending
- ``disconnect_telegram`` clears all four columns (unlinked)
"""
import asyncio
from datetime import datetime

from flask import current_app

from app import db
from app.errors import NotFound, TelegramNotVerifiedError, ValidationError
from app.models import Profile, UserSettings, TelegramLinkState
from app.services.logging_service import log_event, log_change
from app.services.telegram_service import TelegramClient, normalize_username


class SettingsService:
    """Service for per-profile settings."""

    def _get_or_create(self, profile_id: int) -> UserSettings:
        settings = UserSettings.query.filter_by(user_id=profile_id).first()
        if settings is None:
            if db.session.get(Profile, profile_id) is None:
                raise NotFound(f'Profile {profile_id} not found')
            settings = UserSettings(user_id=profile_id)
            db.session.add(settings)
            db.session.commit()
            current_app.logger.info(f'Created default settings for profile {profile_id}')
        return settings

    def get_user_settings(self, profile_id: int) -> dict:
        """Return nested settings, creating the default row if missing."""
        return self._get_or_create(profile_id).to_nested()

    def update_user_settings(self, profile_id: int, updates: dict) -> dict:
        """Apply a nested partial update.

        Unknown sections and keys are ignored. An update without any known
        key returns the current settings unchanged. Telegram linkage can
        only be changed through the link operations below.
        """
        settings = self._get_or_create(profile_id)
        updates = dict(updates or {})
        updates.pop('telegram', None)

        flat = UserSettings.flatten(updates)
        if not flat:
            return settings.to_nested()

        for column, value in flat.items():
            if column == 'password_last_changed' and isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value)
                except ValueError:
                    raise ValidationError(f'Invalid timestamp: {value}')
            setattr(settings, column, value)

        log_event(
            'settings',
            'settings_updated',
            ', '.join(sorted(flat)),
            entity_type='UserSettings',
            entity_id=settings.id,
            user_id=profile_id
        )
        db.session.commit()
        return settings.to_nested()

    def request_telegram_link(self, profile_id: int, username: str) -> dict:
        """Store the Telegram handle and move the link to pending."""
        clean = normalize_username(username)
        if not clean:
            raise ValidationError('Telegram username is required')

        settings = self._get_or_create(profile_id)
        settings.telegram_username = f'@{clean}'
        settings.telegram_chat_id = None
        settings.telegram_is_connected = False
        settings.telegram_connected_at = None

        log_event(
            'settings',
            'telegram_link_requested',
            settings.telegram_username,
            entity_type='UserSettings',
            entity_id=settings.id,
            user_id=profile_id
        )
        db.session.commit()
        return settings.to_nested()

    def verify_telegram_link(self, profile_id: int, client: TelegramClient = None) -> dict:
        """Resolve the pending handle to a chat id and link the account.

        Raises:
            ValidationError: No pending link to verify
            TelegramNotVerifiedError: The user never messaged the bot; the
                link stays pending
            TelegramError: The Bot API could not be reached
        """
        settings = self._get_or_create(profile_id)
        if settings.telegram_state == TelegramLinkState.LINKED:
            return settings.to_nested()
        if settings.telegram_state != TelegramLinkState.PENDING:
            raise ValidationError('No pending Telegram link')

        if client is None:
            client = TelegramClient.from_app(current_app)
        updates = asyncio.run(client.get_updates())
        chat_id = client.find_chat_id(updates, settings.telegram_username)

        if not chat_id:
            raise TelegramNotVerifiedError()

        return self._link(settings, chat_id)

    def connect_telegram(self, profile_id: int, username: str, client: TelegramClient = None) -> dict:
        """Request and verify a link in one step."""
        self.request_telegram_link(profile_id, username)
        return self.verify_telegram_link(profile_id, client=client)

    def _link(self, settings: UserSettings, chat_id: str) -> dict:
        settings.telegram_chat_id = chat_id
        settings.telegram_is_connected = True
        settings.telegram_connected_at = datetime.utcnow()

        log_change(
            'settings',
            'telegram_linked',
            f'{settings.telegram_username} -> {chat_id}',
            entity_type='UserSettings',
            entity_id=settings.id,
            user_id=settings.user_id
        )
        db.session.commit()
        return settings.to_nested()

    def disconnect_telegram(self, profile_id: int) -> dict:
        """Clear the Telegram linkage, from pending or linked."""
        settings = self._get_or_create(profile_id)
        settings.telegram_username = None
        settings.telegram_chat_id = None
        settings.telegram_is_connected = False
        settings.telegram_connected_at = None

        log_event(
            'settings',
            'telegram_unlinked',
            entity_type='UserSettings',
            entity_id=settings.id,
            user_id=profile_id
        )
        db.session.commit()
        return settings.to_nested()

    def mark_password_changed(self, profile_id: int) -> None:
        """Stamp the security section after a password change. Caller commits."""
        settings = self._get_or_create(profile_id)
        settings.password_last_changed = datetime.utcnow()
        settings.password_change_required = False
