"""Profile routes.

Blueprint: profiles_bp
Prefix: /api/profiles
"""
from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Length

from app.errors import PermissionDenied
from app.routes.auth import manager_required
from app.services import get_profile_service
from app.utils import parse_int_arg, validate_form

profiles_bp = Blueprint('profiles', __name__, url_prefix='/api/profiles')


class ProfileForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(), Length(max=100)])


@profiles_bp.route('/me', methods=['GET'])
@login_required
def my_profile():
    return jsonify({'success': True, 'profile': current_user.to_dict()})


@profiles_bp.route('/me', methods=['PATCH'])
@login_required
def update_my_profile():
    """Self-service edit of the display name."""
    form = ProfileForm()
    validate_form(form)
    profile = get_profile_service().update_profile(current_user, full_name=form.full_name.data)
    return jsonify({'success': True, 'profile': profile.to_dict()})


@profiles_bp.route('/<int:profile_id>', methods=['GET'])
@login_required
def get_profile(profile_id):
    """Profile of self, or of anyone for admins."""
    if profile_id != current_user.id and not current_user.is_admin:
        raise PermissionDenied('You cannot view this profile')
    profile = get_profile_service().get_profile(profile_id)
    return jsonify({'success': True, 'profile': profile.to_dict()})


@profiles_bp.route('/managers', methods=['GET'])
@manager_required
def list_managers():
    """Profiles a ticket of the given base can be assigned to."""
    managers = get_profile_service().list_managers(parse_int_arg('base_id'))
    return jsonify({
        'success': True,
        'profiles': [{'id': p.id, 'full_name': p.full_name, 'role': p.role} for p in managers],
    })


@profiles_bp.route('/bases', methods=['GET'])
@login_required
def my_bases():
    """Bases the current profile can file tickets for."""
    bases = get_profile_service().get_user_bases(current_user)
    return jsonify({'success': True, 'bases': [b.to_dict() for b in bases]})
