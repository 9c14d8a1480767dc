"""Per-profile user settings.

Stored flat, exposed to callers as a nested structure with the sections
``notifications``, ``security`` and ``telegram``.
"""
from datetime import datetime
from enum import Enum

from app import db


class TelegramLinkState(str, Enum):
    """Link state of a profile's Telegram account."""
    UNLINKED = 'unlinked'
    PENDING = 'pending'
    LINKED = 'linked'


# nested section -> {nested key: column}
SETTINGS_SECTIONS = {
    'notifications': {
        'email_notifications': 'email_notifications',
        'telegram_notifications': 'telegram_notifications',
        'ticket_updates': 'ticket_updates',
        'assignment_notifications': 'assignment_notifications',
        'weekly_reports': 'weekly_reports',
    },
    'security': {
        'password_last_changed': 'password_last_changed',
        'password_change_required': 'password_change_required',
    },
    'telegram': {
        'username': 'telegram_username',
        'chat_id': 'telegram_chat_id',
        'is_connected': 'telegram_is_connected',
        'connected_at': 'telegram_connected_at',
    },
}

DATETIME_COLUMNS = ('password_last_changed', 'telegram_connected_at')


class UserSettings(db.Model):
    """Notification toggles, security metadata and Telegram linkage."""
    __tablename__ = 'user_settings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), unique=True, nullable=False)

    # Notifications
    email_notifications = db.Column(db.Boolean, default=True, nullable=False)
    telegram_notifications = db.Column(db.Boolean, default=True, nullable=False)
    ticket_updates = db.Column(db.Boolean, default=True, nullable=False)
    assignment_notifications = db.Column(db.Boolean, default=True, nullable=False)
    weekly_reports = db.Column(db.Boolean, default=False, nullable=False)

    # Security
    password_last_changed = db.Column(db.DateTime, nullable=True)
    password_change_required = db.Column(db.Boolean, default=False, nullable=False)

    # Telegram
    telegram_username = db.Column(db.String(64), nullable=True)
    telegram_chat_id = db.Column(db.String(64), nullable=True)
    telegram_is_connected = db.Column(db.Boolean, default=False, nullable=False)
    telegram_connected_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    profile = db.relationship(
        'Profile',
        backref=db.backref('settings', uselist=False, cascade='all, delete-orphan')
    )

    def __repr__(self):
        return f'<UserSettings for Profile {self.user_id}>'

    @property
    def telegram_state(self) -> TelegramLinkState:
        """Derive the link state from the stored columns."""
        if self.telegram_is_connected and self.telegram_chat_id:
            return TelegramLinkState.LINKED
        if self.telegram_username:
            return TelegramLinkState.PENDING
        return TelegramLinkState.UNLINKED

    @property
    def receives_telegram(self) -> bool:
        """True if Telegram notifications are enabled and the account is linked."""
        return bool(
            self.telegram_notifications
            and self.telegram_is_connected
            and self.telegram_chat_id
        )

    def to_nested(self) -> dict:
        """Return the nested representation used by the API."""
        nested = {}
        for section, fields in SETTINGS_SECTIONS.items():
            nested[section] = {}
            for key, column in fields.items():
                value = getattr(self, column)
                if column in DATETIME_COLUMNS and value is not None:
                    value = value.isoformat()
                nested[section][key] = value
        nested['telegram']['state'] = self.telegram_state.value
        return nested

    @staticmethod
    def flatten(updates: dict) -> dict:
        """Translate a nested update into column values.

        Unknown sections and keys are ignored.
        """
        flat = {}
        for section, fields in SETTINGS_SECTIONS.items():
            section_updates = updates.get(section) or {}
            for key, column in fields.items():
                if key in section_updates:
                    flat[column] = section_updates[key]
        return flat
