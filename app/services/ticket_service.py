"""Ticket service for the IT support desk.

This module provides the TicketService class for ticket operations:
filtered reads with role-based visibility, creation, status changes,
assignment, comments, attachments and the statistics shown on the
dashboard and reports pages.

Every mutation writes an append-only history entry (TicketComment) and
triggers a Telegram notification as a detached task, so a failed
notification never rolls back the ticket write.
"""
from datetime import datetime
from typing import Optional, List

from flask import current_app
from sqlalchemy import func

from app import db
from app.errors import NotFound, PermissionDenied, ValidationError
from app.models import (
    Base, Profile, ProfileRole, Ticket, TicketComment,
    TicketStatus, TicketPriority, CommentType, NotificationType
)
from app.services.logging_service import log_event, log_change
from app.services.notification_service import NotificationService
from app.services.storage_service import StorageService

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 10000


class TicketService:
    """Service for ticket operations."""

    def __init__(self, notifications: NotificationService = None, storage: StorageService = None):
        self.notifications = notifications or NotificationService()
        self.storage = storage or StorageService()

    # Reads

    def get_tickets(
        self,
        viewer: Profile = None,
        base_id: int = None,
        status: str = None,
        priority: str = None,
        created_by: int = None,
        assigned_to: int = None
    ) -> List[Ticket]:
        """Get tickets, newest first.

        Args:
            viewer: Profile the list is scoped to. Admins see everything,
                HIS staff the tickets of their bases, Users their own
                tickets and Viewers none. None means unscoped.
            base_id, status, priority, created_by, assigned_to: Optional filters

        Returns:
            List of tickets
        """
        query = Ticket.query

        if viewer is not None and not viewer.can_view_all_tickets():
            if viewer.role == ProfileRole.HIS.value:
                query = query.filter(Ticket.base_id.in_(viewer.base_ids or [-1]))
            elif viewer.role == ProfileRole.USER.value:
                query = query.filter(Ticket.created_by == viewer.id)
            else:
                return []

        if base_id:
            query = query.filter(Ticket.base_id == base_id)
        if status:
            query = query.filter(Ticket.status == status)
        if priority:
            query = query.filter(Ticket.priority == priority)
        if created_by:
            query = query.filter(Ticket.created_by == created_by)
        if assigned_to:
            query = query.filter(Ticket.assigned_to == assigned_to)

        return query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()

    def get_all_tickets(self) -> List[Ticket]:
        """Get every ticket, newest first."""
        return Ticket.query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()

    def get_ticket(self, ticket_id: int) -> Ticket:
        """Get a ticket by ID.

        Raises:
            NotFound: Ticket does not exist
        """
        ticket = db.session.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFound(f'Ticket {ticket_id} not found')
        return ticket

    def get_ticket_history(self, ticket_id: int) -> List[TicketComment]:
        """Get history entries of a ticket, newest first."""
        return TicketComment.query.filter_by(ticket_id=ticket_id).order_by(
            TicketComment.created_at.desc(), TicketComment.id.desc()
        ).all()

    # Writes

    def create_ticket(
        self,
        creator: Profile,
        title: str,
        description: str,
        priority: str = TicketPriority.MEDIUM.value,
        base_id: int = None,
        attachment_urls: list = None
    ) -> Ticket:
        """Create a new ticket.

        Args:
            creator: Profile filing the ticket
            title: Ticket title (max 200 chars)
            description: Problem description (max 10000 chars)
            priority: One of TicketPriority
            base_id: Base the ticket belongs to; defaults to the creator's
                only base
            attachment_urls: URLs of already uploaded screenshots

        Returns:
            The created Ticket

        Raises:
            ValidationError: Invalid field values
            PermissionDenied: Creator may not file tickets for this base
        """
        if not creator.can_create_tickets():
            raise PermissionDenied('Your role cannot create tickets')

        title = (title or '').strip()
        description = (description or '').strip()
        if not title:
            raise ValidationError('Title is required')
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f'Title must be at most {TITLE_MAX_LENGTH} characters')
        if not description:
            raise ValidationError('Description is required')
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f'Description must be at most {DESCRIPTION_MAX_LENGTH} characters')
        if priority not in TicketPriority.values():
            raise ValidationError(f'Invalid priority: {priority}')

        if base_id is None and len(creator.base_ids) == 1:
            base_id = creator.base_ids[0]
        if base_id is None or db.session.get(Base, base_id) is None:
            raise ValidationError('A valid base is required')
        if not creator.can_access_base(base_id):
            raise PermissionDenied('You cannot create tickets for this base')

        ticket = Ticket(
            title=title,
            description=description,
            status=TicketStatus.OPEN.value,
            priority=priority,
            base_id=base_id,
            created_by=creator.id,
            attachment_urls=list(attachment_urls or [])
        )
        db.session.add(ticket)
        db.session.flush()

        log_change(
            'tickets',
            'ticket_created',
            f'Ticket #{ticket.id} created: {title[:50]}',
            entity_type='Ticket',
            entity_id=ticket.id,
            user_id=creator.id
        )
        db.session.commit()

        self.notifications.notify_detached(
            NotificationType.TICKET_CREATED.value,
            ticket.id,
            f'New {priority} priority ticket created by {creator.full_name}'
        )
        return ticket

    def update_ticket(self, ticket: Ticket, **fields) -> Ticket:
        """Update plain ticket fields (title, description, priority).

        Status and assignee have their own operations since they write
        history entries.
        """
        allowed = {'title', 'description', 'priority'}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f'Cannot update fields: {", ".join(sorted(unknown))}')

        if 'title' in fields:
            title = (fields['title'] or '').strip()
            if not title or len(title) > TITLE_MAX_LENGTH:
                raise ValidationError(f'Title must be 1-{TITLE_MAX_LENGTH} characters')
            ticket.title = title
        if 'description' in fields:
            description = (fields['description'] or '').strip()
            if not description or len(description) > DESCRIPTION_MAX_LENGTH:
                raise ValidationError(f'Description must be 1-{DESCRIPTION_MAX_LENGTH} characters')
            ticket.description = description
        if 'priority' in fields:
            if fields['priority'] not in TicketPriority.values():
                raise ValidationError(f'Invalid priority: {fields["priority"]}')
            ticket.priority = fields['priority']

        ticket.updated_at = datetime.utcnow()
        db.session.commit()
        return ticket

    def change_status(self, ticket: Ticket, new_status: str, actor: Profile) -> Optional[TicketComment]:
        """Change ticket status and record the change.

        Returns:
            The status_change history entry, or None if the status did not change
        """
        if new_status not in TicketStatus.values():
            raise ValidationError(f'Invalid status: {new_status}')
        if not actor.can_manage_tickets() or not actor.can_access_base(ticket.base_id):
            raise PermissionDenied('You cannot change the status of this ticket')

        old_status = ticket.status
        if old_status == new_status:
            return None

        now = datetime.utcnow()
        ticket.status = new_status
        ticket.updated_at = now

        # closed_at only on Closed tickets, resolved_at on Resolved and Closed
        if new_status == TicketStatus.CLOSED.value:
            ticket.closed_at = ticket.closed_at or now
            ticket.resolved_at = ticket.resolved_at or now
        elif new_status == TicketStatus.RESOLVED.value:
            ticket.closed_at = None
            ticket.resolved_at = ticket.resolved_at or now
        else:
            ticket.closed_at = None
            ticket.resolved_at = None

        text = f'Status changed from {old_status} to {new_status}'
        entry = TicketComment(
            ticket_id=ticket.id,
            user_id=actor.id,
            comment_type=CommentType.STATUS_CHANGE.value,
            old_value=old_status,
            new_value=new_status,
            comment=text
        )
        db.session.add(entry)

        log_change(
            'tickets',
            'ticket_status_changed',
            f'{old_status} → {new_status}',
            entity_type='Ticket',
            entity_id=ticket.id,
            user_id=actor.id
        )
        db.session.commit()

        self.notifications.notify_detached(NotificationType.TICKET_UPDATED.value, ticket.id, text)
        return entry

    def assign_ticket(self, ticket: Ticket, assignee: Profile, actor: Profile) -> TicketComment:
        """Assign a ticket to an active, manage-capable profile.

        Raises:
            PermissionDenied: Actor may not assign this ticket
            ValidationError: Assignee cannot take tickets of this base, or
                is already assigned
        """
        if not actor.can_manage_tickets() or not actor.can_access_base(ticket.base_id):
            raise PermissionDenied('You cannot assign this ticket')
        if not assignee.can_manage_tickets() or not assignee.active:
            raise ValidationError(f'{assignee.full_name} cannot be assigned tickets')
        if not assignee.can_access_base(ticket.base_id):
            raise ValidationError(f'{assignee.full_name} has no access to base {ticket.base_name}')
        if ticket.assigned_to == assignee.id:
            raise ValidationError(f'Ticket is already assigned to {assignee.full_name}')

        old_name = ticket.assignee_name or 'Unassigned'
        ticket.assigned_to = assignee.id
        ticket.assignee = assignee
        ticket.updated_at = datetime.utcnow()

        text = f'Ticket assigned to {assignee.full_name}'
        entry = TicketComment(
            ticket_id=ticket.id,
            user_id=actor.id,
            comment_type=CommentType.ASSIGNMENT.value,
            old_value=old_name,
            new_value=assignee.full_name,
            comment=text
        )
        db.session.add(entry)

        log_change(
            'tickets',
            'ticket_assigned',
            f'{old_name} → {assignee.full_name}',
            entity_type='Ticket',
            entity_id=ticket.id,
            user_id=actor.id
        )
        db.session.commit()

        self.notifications.notify_detached(
            NotificationType.TICKET_ASSIGNED.value, ticket.id, text,
            target_user_id=assignee.id
        )
        return entry

    def add_comment(self, ticket: Ticket, author: Profile, text: str) -> TicketComment:
        """Add a plain comment to a ticket."""
        text = (text or '').strip()
        if not text:
            raise ValidationError('Comment must not be empty')
        if len(text) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f'Comment must be at most {DESCRIPTION_MAX_LENGTH} characters')
        if not author.can_view_ticket(ticket):
            raise PermissionDenied('You cannot comment on this ticket')
        if ticket.status == TicketStatus.CLOSED.value:
            raise ValidationError('Cannot comment on a closed ticket')

        entry = TicketComment(
            ticket_id=ticket.id,
            user_id=author.id,
            comment_type=CommentType.COMMENT.value,
            comment=text
        )
        db.session.add(entry)
        ticket.updated_at = datetime.utcnow()

        log_event(
            'tickets',
            'ticket_comment',
            entity_type='Ticket',
            entity_id=ticket.id,
            user_id=author.id
        )
        db.session.commit()

        self.notifications.notify_detached(NotificationType.TICKET_COMMENT.value, ticket.id, text)
        return entry

    def add_attachment(self, ticket: Ticket, file, actor: Profile) -> str:
        """Store an uploaded file and append its URL to the ticket."""
        if not actor.can_view_ticket(ticket):
            raise PermissionDenied('You cannot add attachments to this ticket')

        url = self.storage.upload_attachment(ticket.id, file)
        # Reassign so the JSON column is flagged dirty
        ticket.attachment_urls = list(ticket.attachment_urls or []) + [url]
        ticket.updated_at = datetime.utcnow()
        db.session.commit()

        current_app.logger.info(f'Attachment added to ticket {ticket.id}: {url}')
        return url

    # Statistics

    def get_ticket_stats(self, base_id: int = None, now: datetime = None) -> dict:
        """Counts per status and average resolution time in hours.

        ``avg_resolution_time_current`` covers tickets resolved in the
        current calendar month, ``avg_resolution_time_prev`` the month before.
        """
        now = now or datetime.utcnow()
        query = Ticket.query
        if base_id:
            query = query.filter(Ticket.base_id == base_id)
        tickets = query.all()

        counts = {status.value: 0 for status in TicketStatus}
        for ticket in tickets:
            counts[ticket.status] = counts.get(ticket.status, 0) + 1

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if month_start.month == 1:
            prev_month_start = month_start.replace(year=month_start.year - 1, month=12)
        else:
            prev_month_start = month_start.replace(month=month_start.month - 1)

        resolved = [t for t in tickets if t.resolved_at and t.created_at]
        current = [t for t in resolved if t.resolved_at >= month_start]
        previous = [t for t in resolved if prev_month_start <= t.resolved_at < month_start]

        return {
            'total': len(tickets),
            'open': counts[TicketStatus.OPEN.value],
            'in_progress': counts[TicketStatus.IN_PROGRESS.value],
            'resolved': counts[TicketStatus.RESOLVED.value],
            'closed': counts[TicketStatus.CLOSED.value],
            'avg_resolution_time': _average_hours(resolved),
            'avg_resolution_time_current': _average_hours(current),
            'avg_resolution_time_prev': _average_hours(previous),
        }

    def get_report(self) -> dict:
        """Ticket counts by status, base and priority."""
        by_status = dict(
            db.session.query(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status).all()
        )
        by_priority = dict(
            db.session.query(Ticket.priority, func.count(Ticket.id)).group_by(Ticket.priority).all()
        )
        by_base = dict(
            db.session.query(Base.name, func.count(Ticket.id))
            .join(Ticket, Ticket.base_id == Base.id)
            .group_by(Base.name).all()
        )
        return {
            'by_status': {s: by_status.get(s, 0) for s in TicketStatus.values()},
            'by_priority': {p: by_priority.get(p, 0) for p in TicketPriority.values()},
            'by_base': by_base,
            'total': sum(by_status.values()),
        }


def _average_hours(tickets: List[Ticket]) -> float:
    if not tickets:
        return 0
    seconds = sum((t.resolved_at - t.created_at).total_seconds() for t in tickets)
    return round(seconds / len(tickets) / 3600, 1)
