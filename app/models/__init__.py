"""Database models."""
from app.models.base import Base, profile_base
from app.models.profile import Profile, ProfileRole
from app.models.user_settings import UserSettings, TelegramLinkState
from app.models.ticket import (
    Ticket, TicketComment,
    TicketStatus, TicketPriority, CommentType, NotificationType
)
from app.models.audit_log import AuditLog, AuditImportance

__all__ = [
    'Base', 'profile_base',
    'Profile', 'ProfileRole',
    'UserSettings', 'TelegramLinkState',
    # Tickets
    'Ticket', 'TicketComment',
    'TicketStatus', 'TicketPriority', 'CommentType', 'NotificationType',
    'AuditLog', 'AuditImportance',
]
