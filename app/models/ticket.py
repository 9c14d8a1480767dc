"""Ticket models for the IT support desk.

This module contains the Ticket and TicketComment models, as well as the
enums for ticket status, priority, history entry type and notification type.
"""
from datetime import datetime
from enum import Enum

from app import db


class TicketStatus(str, Enum):
    """Status values for tickets."""
    OPEN = 'Open'
    IN_PROGRESS = 'In Progress'
    RESOLVED = 'Resolved'
    CLOSED = 'Closed'

    @classmethod
    def choices(cls):
        """Return choices for form select fields."""
        return [(s.value, s.value) for s in cls]

    @classmethod
    def values(cls):
        return [s.value for s in cls]

    @classmethod
    def active_status(cls):
        """Return list of status values that are considered 'open'."""
        return [cls.OPEN.value, cls.IN_PROGRESS.value]


class TicketPriority(str, Enum):
    """Priority levels for tickets."""
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'
    CRITICAL = 'Critical'

    @classmethod
    def choices(cls):
        """Return choices for form select fields."""
        return [(p.value, p.value) for p in cls]

    @classmethod
    def values(cls):
        return [p.value for p in cls]


class CommentType(str, Enum):
    """Kinds of ticket history entries."""
    COMMENT = 'comment'
    STATUS_CHANGE = 'status_change'
    ASSIGNMENT = 'assignment'


class NotificationType(str, Enum):
    """Notification kinds sent for ticket events."""
    TICKET_CREATED = 'ticket_created'
    TICKET_ASSIGNED = 'ticket_assigned'
    TICKET_UPDATED = 'ticket_updated'
    TICKET_COMMENT = 'ticket_comment'


class Ticket(db.Model):
    """Support ticket filed by a user for one base."""
    __tablename__ = 'ticket'

    id = db.Column(db.Integer, primary_key=True)

    # Content
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)

    # Classification
    status = db.Column(db.String(20), default=TicketStatus.OPEN.value, nullable=False, index=True)
    priority = db.Column(db.String(20), default=TicketPriority.MEDIUM.value, nullable=False)

    base_id = db.Column(db.Integer, db.ForeignKey('base.id'), nullable=False, index=True)

    # People involved
    created_by = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    assigned_to = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=True)

    # Public URLs of uploaded screenshots
    attachment_urls = db.Column(db.JSON, default=list)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    base = db.relationship('Base', backref=db.backref('tickets', lazy='dynamic'))
    creator = db.relationship(
        'Profile',
        foreign_keys=[created_by],
        backref='created_tickets'
    )
    assignee = db.relationship(
        'Profile',
        foreign_keys=[assigned_to],
        backref='assigned_tickets'
    )
    comments = db.relationship(
        'TicketComment',
        backref='ticket',
        lazy='dynamic',
        cascade='all, delete-orphan',
        order_by='TicketComment.created_at'
    )

    def __repr__(self):
        return f'<Ticket {self.id}: {self.title[:30]}>'

    @property
    def is_open(self):
        """Check if ticket is still open (not resolved or closed)."""
        return self.status in TicketStatus.active_status()

    @property
    def base_name(self):
        return self.base.name if self.base else None

    @property
    def creator_name(self):
        return self.creator.full_name if self.creator else None

    @property
    def assignee_name(self):
        return self.assignee.full_name if self.assignee else None

    def to_dict(self):
        """Convert to dictionary, with creator/assignee names joined in."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'base_id': self.base_id,
            'base_name': self.base_name,
            'created_by': self.created_by,
            'assigned_to': self.assigned_to,
            'creator_profile': {'full_name': self.creator_name} if self.creator else None,
            'assignee_profile': {'full_name': self.assignee_name} if self.assignee else None,
            'attachment_urls': list(self.attachment_urls or []),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
        }


class TicketComment(db.Model):
    """Append-only history entry on a ticket.

    Plain comments, status changes and assignments are all recorded here;
    the latter two carry the old and new value.
    """
    __tablename__ = 'ticket_comment'

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('ticket.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)

    comment_type = db.Column(db.String(20), default=CommentType.COMMENT.value, nullable=False)
    old_value = db.Column(db.String(200), nullable=True)
    new_value = db.Column(db.String(200), nullable=True)
    comment = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('Profile', backref='ticket_comments')

    def __repr__(self):
        return f'<TicketComment {self.id} on Ticket {self.ticket_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'ticket_id': self.ticket_id,
            'user_id': self.user_id,
            'user': {'full_name': self.user.full_name} if self.user else None,
            'comment_type': self.comment_type,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'comment': self.comment,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
