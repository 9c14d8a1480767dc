"""AuditLog model: who did what to which record."""
from datetime import datetime
from enum import Enum

from app import db


class AuditImportance(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class AuditLog(db.Model):
    """Audit trail entry.

    user_id is kept after the profile is deleted, so entries stay
    attributable.
    """
    __tablename__ = 'audit_log'

    MODULES = ('tickets', 'auth', 'settings', 'admin', 'notifications')

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=True)
    user = db.relationship('Profile', backref=db.backref('audit_logs', lazy='dynamic'))

    module = db.Column(db.String(30), nullable=False, index=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    details = db.Column(db.Text, nullable=True)
    importance = db.Column(db.String(20), default=AuditImportance.LOW.value, index=True, nullable=False)

    entity_type = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    def __repr__(self):
        return f'<AuditLog {self.id}: {self.action} @ {self.timestamp}>'

    @property
    def user_display(self) -> str:
        if self.user:
            return self.user.full_name or self.user.email
        if self.user_id:
            return f'Deleted user (ID: {self.user_id})'
        return 'System'

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'user': self.user_display,
            'module': self.module,
            'action': self.action,
            'details': self.details,
            'importance': self.importance,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
        }
