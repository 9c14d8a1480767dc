"""Base (organizational unit) model and profile membership table."""
from datetime import datetime

from app import db


profile_base = db.Table(
    'profile_base',
    db.Column('profile_id', db.Integer, db.ForeignKey('profile.id'), primary_key=True),
    db.Column('base_id', db.Integer, db.ForeignKey('base.id'), primary_key=True),
)


class Base(db.Model):
    """Location or organizational unit that tickets and profiles belong to."""
    __tablename__ = 'base'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Base {self.name}>'

    def to_dict(self):
        """Return dictionary representation."""
        return {
            'id': self.id,
            'name': self.name,
        }
