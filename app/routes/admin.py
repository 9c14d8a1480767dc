"""Admin routes for bases, roles, reports and system health.

Blueprint: admin_bp
Prefix: /api/admin
"""
from flask import Blueprint, jsonify, request
from flask_login import current_user
from flask_wtf import FlaskForm
from wtforms import StringField, SelectField
from wtforms.validators import DataRequired, Length

from app import db
from app.errors import ValidationError
from app.models import AuditLog, ProfileRole
from app.routes.auth import admin_required, role_required
from app.services import get_profile_service, get_ticket_service
from app.utils import get_json_body, parse_int_arg, validate_form

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


class BaseForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(), Length(max=100)])


class RoleForm(FlaskForm):
    role = SelectField('Role', choices=ProfileRole.choices(), validators=[DataRequired()])


# ============================================================================
# Bases
# ============================================================================

@admin_bp.route('/bases', methods=['GET'])
@admin_required
def list_bases():
    bases = get_profile_service().get_all_bases()
    return jsonify({'success': True, 'bases': [b.to_dict() for b in bases]})


@admin_bp.route('/bases', methods=['POST'])
@admin_required
def create_base():
    form = BaseForm()
    validate_form(form)
    base = get_profile_service().create_base(form.name.data)
    return jsonify({'success': True, 'base': base.to_dict()}), 201


# ============================================================================
# Profiles
# ============================================================================

@admin_bp.route('/profiles', methods=['GET'])
@admin_required
def list_profiles():
    profiles = get_profile_service().list_profiles()
    return jsonify({'success': True, 'profiles': [p.to_dict() for p in profiles]})


@admin_bp.route('/profiles/<int:profile_id>/bases', methods=['PUT'])
@admin_required
def assign_bases(profile_id):
    """Replace the base membership of a profile."""
    base_ids = get_json_body().get('base_ids')
    if not isinstance(base_ids, list):
        raise ValidationError('base_ids must be a list')

    service = get_profile_service()
    profile = service.assign_bases(service.get_profile(profile_id), base_ids, actor=current_user)
    return jsonify({'success': True, 'profile': profile.to_dict()})


@admin_bp.route('/profiles/<int:profile_id>/role', methods=['PUT'])
@admin_required
def set_role(profile_id):
    form = RoleForm()
    validate_form(form)

    if profile_id == current_user.id and form.role.data != ProfileRole.ADMIN.value:
        raise ValidationError('You cannot remove your own admin role')

    service = get_profile_service()
    profile = service.set_role(service.get_profile(profile_id), form.role.data, actor=current_user)
    return jsonify({'success': True, 'profile': profile.to_dict()})


# ============================================================================
# Reports
# ============================================================================

@admin_bp.route('/reports', methods=['GET'])
@role_required('Admin', 'HIS', 'Viewer')
def reports():
    """Ticket counts by status, base and priority plus resolution times."""
    service = get_ticket_service()
    return jsonify({
        'success': True,
        'report': service.get_report(),
        'stats': service.get_ticket_stats(),
    })


@admin_bp.route('/audit-log', methods=['GET'])
@admin_required
def audit_log():
    """Latest audit log entries, optionally filtered by module."""
    query = AuditLog.query
    module = request.args.get('module')
    if module:
        query = query.filter_by(module=module)
    limit = min(parse_int_arg('limit') or 100, 500)
    entries = query.order_by(AuditLog.timestamp.desc()).limit(limit).all()
    return jsonify({'success': True, 'entries': [e.to_dict() for e in entries]})


# ============================================================================
# Health Checks
# ============================================================================

@admin_bp.route('/health', methods=['GET'])
def health():
    """Simple health check for load balancers/monitoring."""
    try:
        db.session.execute(db.text('SELECT 1'))
        return jsonify({'status': 'ok'}), 200
    except Exception:
        return jsonify({'status': 'error'}), 503
