"""Service modules for the helpdesk backend."""
from app.services.background import DetachedTask, run_detached
from app.services.telegram_service import TelegramClient, normalize_username
from app.services.notification_service import (
    NotificationRequest, DispatchResult, RecipientResolver,
    NotificationDispatcher, NotificationService, render_notification
)
from app.services.storage_service import StorageService, S3Storage, LocalStorage, S3Config
from app.services.settings_service import SettingsService
from app.services.profile_service import ProfileService
from app.services.ticket_service import TicketService

__all__ = [
    # Background
    'DetachedTask', 'run_detached',
    # Telegram
    'TelegramClient', 'normalize_username',
    # Notifications
    'NotificationRequest', 'DispatchResult', 'RecipientResolver',
    'NotificationDispatcher', 'NotificationService', 'render_notification',
    # Storage Service
    'StorageService', 'S3Storage', 'LocalStorage', 'S3Config',
    # Data access
    'SettingsService', 'ProfileService', 'TicketService',
    'get_ticket_service', 'get_profile_service', 'get_settings_service',
]


def get_ticket_service() -> TicketService:
    """Get a TicketService instance."""
    return TicketService()


def get_profile_service() -> ProfileService:
    """Get a ProfileService instance."""
    return ProfileService()


def get_settings_service() -> SettingsService:
    """Get a SettingsService instance."""
    return SettingsService()
