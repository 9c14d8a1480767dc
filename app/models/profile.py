"""Profile model for authentication and role-based access."""
from datetime import datetime
from enum import Enum

from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin

from app import db
from app.models.base import profile_base


class ProfileRole(str, Enum):
    """Roles a profile can hold."""
    ADMIN = 'Admin'
    HIS = 'HIS'
    USER = 'User'
    VIEWER = 'Viewer'

    @classmethod
    def choices(cls):
        """Return choices for form select fields."""
        return [(r.value, r.value) for r in cls]

    @classmethod
    def manager_roles(cls):
        """Roles that may triage, assign and resolve tickets."""
        return [cls.ADMIN.value, cls.HIS.value]


class Profile(UserMixin, db.Model):
    """Application-level user record.

    Holds the login credentials as well as display name, role and base
    membership. Each profile owns at most one UserSettings row.
    """

    __tablename__ = 'profile'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ProfileRole.USER.value)
    active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    bases = db.relationship(
        'Base',
        secondary=profile_base,
        backref=db.backref('profiles', lazy='dynamic'),
        order_by='Base.name'
    )

    def __repr__(self):
        return f'<Profile {self.email}>'

    def set_password(self, password):
        """Hash and set the password."""
        self.password_hash = generate_password_hash(password, method='pbkdf2:sha256')

    def check_password(self, password):
        """Check if password matches hash."""
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        """Deactivated profiles cannot log in (Flask-Login hook)."""
        return bool(self.active)

    @property
    def base_ids(self):
        return [base.id for base in self.bases]

    def has_role(self, role):
        """Check if profile has exactly this role."""
        return self.role == role

    def has_any_role(self, roles):
        """Check if profile has one of the given roles."""
        return self.role in roles

    @property
    def is_admin(self):
        return self.role == ProfileRole.ADMIN.value

    def can_access_base(self, base_id):
        """Admins access all bases, everyone else only their own."""
        if self.is_admin:
            return True
        return base_id in self.base_ids

    def can_manage_tickets(self):
        return self.has_any_role(ProfileRole.manager_roles())

    def can_view_all_tickets(self):
        return self.is_admin

    def can_create_tickets(self):
        return self.has_any_role([
            ProfileRole.ADMIN.value, ProfileRole.HIS.value, ProfileRole.USER.value
        ])

    def can_view_reports(self):
        return self.has_any_role([
            ProfileRole.ADMIN.value, ProfileRole.HIS.value, ProfileRole.VIEWER.value
        ])

    def can_view_ticket(self, ticket):
        """Check if this profile may see a ticket."""
        if self.is_admin:
            return True
        if self.role == ProfileRole.HIS.value:
            return ticket.base_id in self.base_ids
        return ticket.created_by == self.id

    def to_dict(self):
        """Convert to dictionary."""
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'bases': [base.to_dict() for base in self.bases],
            'active': self.active,
            'last_login': self.last_login.isoformat() if self.last_login else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
