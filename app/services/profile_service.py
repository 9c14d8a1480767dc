"""Profile and base administration service."""
from typing import List

from app import db
from app.errors import NotFound, ValidationError
from app.models import Base, CommentType, Profile, ProfileRole, Ticket, TicketComment
from app.services.logging_service import log_security, log_change


class ProfileService:
    """Service for profiles, roles and base membership."""

    def get_profile(self, profile_id: int) -> Profile:
        profile = db.session.get(Profile, profile_id)
        if profile is None:
            raise NotFound(f'Profile {profile_id} not found')
        return profile

    def update_profile(self, profile: Profile, full_name: str = None) -> Profile:
        """Self-service profile update. Only the display name is editable."""
        if full_name is not None:
            full_name = full_name.strip()
            if not full_name or len(full_name) > 100:
                raise ValidationError('Full name must be 1-100 characters')
            profile.full_name = full_name
        db.session.commit()
        return profile

    def list_profiles(self) -> List[Profile]:
        return Profile.query.order_by(Profile.full_name).all()

    def list_managers(self, base_id: int = None) -> List[Profile]:
        """Profiles that can be assigned tickets, optionally limited to a base."""
        managers = Profile.query.filter(
            Profile.role.in_(ProfileRole.manager_roles()),
            Profile.active.is_(True)
        ).order_by(Profile.full_name).all()
        if base_id is None:
            return managers
        return [p for p in managers if p.can_access_base(base_id)]

    def get_all_bases(self) -> List[Base]:
        return Base.query.order_by(Base.name).all()

    def get_user_bases(self, profile: Profile) -> List[Base]:
        """Bases visible to a profile (all of them for Admins)."""
        if profile.is_admin:
            return self.get_all_bases()
        return list(profile.bases)

    def create_base(self, name: str) -> Base:
        name = (name or '').strip()
        if not name or len(name) > 100:
            raise ValidationError('Base name must be 1-100 characters')
        if Base.query.filter_by(name=name).first():
            raise ValidationError(f'Base already exists: {name}')

        base = Base(name=name)
        db.session.add(base)
        db.session.flush()
        log_change('admin', 'base_created', name, entity_type='Base', entity_id=base.id)
        db.session.commit()
        return base

    def _load_bases(self, base_ids) -> List[Base]:
        base_ids = [int(b) for b in (base_ids or [])]
        bases = Base.query.filter(Base.id.in_(base_ids)).all() if base_ids else []
        missing = set(base_ids) - {b.id for b in bases}
        if missing:
            raise ValidationError(f'Unknown bases: {", ".join(str(m) for m in sorted(missing))}')
        return bases

    def _release_tickets(self, profile: Profile, actor: Profile = None) -> List[Ticket]:
        """Unassign the profile from tickets it may no longer handle.

        Each release is recorded as an assignment history entry. The caller
        commits.
        """
        released = []
        for ticket in Ticket.query.filter_by(assigned_to=profile.id).all():
            if profile.can_manage_tickets() and profile.can_access_base(ticket.base_id):
                continue
            ticket.assigned_to = None
            ticket.assignee = None
            db.session.add(TicketComment(
                ticket_id=ticket.id,
                user_id=(actor or profile).id,
                comment_type=CommentType.ASSIGNMENT.value,
                old_value=profile.full_name,
                new_value='Unassigned',
                comment=f'Ticket unassigned: {profile.full_name} can no longer handle it'
            ))
            released.append(ticket)
        return released

    def assign_bases(self, profile: Profile, base_ids: list, actor: Profile = None) -> Profile:
        """Replace the base membership of a profile.

        Tickets of bases the profile loses are unassigned from it.
        """
        profile.bases = self._load_bases(base_ids)
        self._release_tickets(profile, actor)
        log_change(
            'admin',
            'bases_assigned',
            ', '.join(b.name for b in profile.bases) or '-',
            entity_type='Profile',
            entity_id=profile.id
        )
        db.session.commit()
        return profile

    def set_role(self, profile: Profile, role: str, actor: Profile = None) -> Profile:
        """Change the role. A profile demoted below HIS loses its tickets."""
        if role not in [r.value for r in ProfileRole]:
            raise ValidationError(f'Invalid role: {role}')

        old_role = profile.role
        profile.role = role
        self._release_tickets(profile, actor)
        log_security(
            'admin',
            'role_changed',
            f'{profile.email}: {old_role} → {role}',
            entity_type='Profile',
            entity_id=profile.id
        )
        db.session.commit()
        return profile

    def register(self, email: str, password: str, full_name: str, base_ids: list = None) -> Profile:
        """Create a new profile with role User."""
        email = (email or '').strip().lower()
        if Profile.query.filter_by(email=email).first():
            raise ValidationError('Email already registered')

        profile = Profile(
            email=email,
            full_name=full_name.strip(),
            role=ProfileRole.USER.value
        )
        profile.set_password(password)
        profile.bases = self._load_bases(base_ids)
        db.session.add(profile)
        db.session.flush()

        log_change(
            'auth',
            'signup',
            email,
            entity_type='Profile',
            entity_id=profile.id,
            user_id=profile.id
        )
        db.session.commit()
        return profile
