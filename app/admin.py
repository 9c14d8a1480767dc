"""Flask-Admin configuration with role-based access control."""
from flask import jsonify
from flask_admin import Admin, AdminIndexView, expose
from flask_admin.contrib.sqla import ModelView
from flask_login import current_user


def _is_admin() -> bool:
    return current_user.is_authenticated and current_user.is_admin


class SecureModelView(ModelView):
    """ModelView that requires admin role."""

    def is_accessible(self):
        """Check if current user is admin."""
        return _is_admin()

    def inaccessible_callback(self, name, **kwargs):
        return jsonify({'success': False, 'error': 'Access denied'}), 403


class ProfileView(SecureModelView):
    column_list = ('email', 'full_name', 'role', 'active', 'last_login')
    column_searchable_list = ('email', 'full_name')
    column_filters = ('role', 'active')
    form_excluded_columns = ('password_hash', 'settings', 'created_tickets',
                             'assigned_tickets', 'ticket_comments', 'audit_logs')


class TicketView(SecureModelView):
    # Tickets are never deleted, history entries are append-only
    can_delete = False
    column_list = ('id', 'title', 'status', 'priority', 'base', 'creator', 'assignee', 'created_at')
    column_searchable_list = ('title',)
    column_filters = ('status', 'priority')
    column_default_sort = ('created_at', True)


class ReadOnlyView(SecureModelView):
    can_create = False
    can_edit = False
    can_delete = False


class SecureAdminIndexView(AdminIndexView):
    """Admin index view that requires admin role."""

    @expose('/')
    def index(self):
        """Check admin access before showing index."""
        if not _is_admin():
            return jsonify({'success': False, 'error': 'Access denied'}), 403
        return super().index()


def init_admin(app, db):
    """Initialize Flask-Admin with all model views."""
    from app.models import AuditLog, Base, Profile, Ticket, TicketComment, UserSettings

    admin = Admin(
        app,
        name='Helpdesk DB Admin',
        url='/db-admin',
        endpoint='dbadmin',  # Unique endpoint to avoid conflict with admin_bp
        index_view=SecureAdminIndexView(url='/db-admin', endpoint='dbadmin')
    )

    admin.add_view(ProfileView(Profile, db.session, name='Profiles'))
    admin.add_view(SecureModelView(Base, db.session, name='Bases'))
    admin.add_view(TicketView(Ticket, db.session, name='Tickets'))
    admin.add_view(ReadOnlyView(TicketComment, db.session, name='History'))
    admin.add_view(SecureModelView(UserSettings, db.session, name='Settings'))
    admin.add_view(ReadOnlyView(AuditLog, db.session, name='Audit Log'))

    return admin
