"""Authentication routes.

Blueprint: auth_bp
Prefix: /api/auth

Session auth via Flask-Login. ``GET /session`` reports the session with an
``expires_at`` epoch; expired sessions are logged out on the next request.
"""
from datetime import datetime
from functools import wraps

from flask import Blueprint, current_app, jsonify, session
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Email, Length

from app import db
from app.errors import ValidationError
from app.models import Profile
from app.services import get_profile_service, get_settings_service
from app.services.logging_service import log_event, log_security
from app.utils import get_json_body, validate_form

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


class LoginForm(FlaskForm):
    """Login form."""
    email = StringField('E-Mail', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])


class SignupForm(FlaskForm):
    """Signup form. Base ids are read from the JSON body directly."""
    email = StringField('E-Mail', validators=[DataRequired(), Email(), Length(max=120)])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6)])
    full_name = StringField('Full name', validators=[DataRequired(), Length(max=100)])


class PasswordChangeForm(FlaskForm):
    """Password change form."""
    current_password = PasswordField('Current password', validators=[DataRequired()])
    new_password = PasswordField('New password', validators=[DataRequired(), Length(min=6)])


class ResetPasswordForm(FlaskForm):
    """Password reset request form."""
    email = StringField('E-Mail', validators=[DataRequired(), Email()])


def role_required(*roles):
    """Decorator to require one of the given roles (JSON 401/403)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Authentication required'}), 401
            if not current_user.has_any_role(roles):
                return jsonify({'success': False, 'error': 'Access denied'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def manager_required(f):
    """Decorator to require Admin or HIS role."""
    return role_required('Admin', 'HIS')(f)


def admin_required(f):
    """Decorator to require Admin role."""
    return role_required('Admin')(f)


def _expires_at() -> int:
    return int(session.get('expires_at', 0))


def _start_session(profile: Profile) -> dict:
    lifetime = current_app.config['SESSION_LIFETIME']
    login_user(profile)
    session.permanent = True
    session['expires_at'] = int((datetime.utcnow() + lifetime).timestamp())
    return _session_payload(profile)


def _session_payload(profile: Profile) -> dict:
    return {
        'user': {'id': profile.id, 'email': profile.email},
        'expires_at': _expires_at(),
    }


@auth_bp.before_app_request
def expire_session():
    """Log out sessions past their expires_at."""
    if current_user.is_authenticated and _expires_at() < int(datetime.utcnow().timestamp()):
        current_app.logger.info(f'Session of profile {current_user.id} expired')
        logout_user()
        session.pop('expires_at', None)


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Register a new profile (role User) and sign it in."""
    form = SignupForm()
    validate_form(form)

    base_ids = get_json_body().get('base_ids') or []
    if not isinstance(base_ids, list):
        raise ValidationError('base_ids must be a list')

    profile = get_profile_service().register(
        email=form.email.data,
        password=form.password.data,
        full_name=form.full_name.data,
        base_ids=base_ids
    )
    payload = _start_session(profile)
    return jsonify({'success': True, 'session': payload, 'profile': profile.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Sign in with email and password."""
    form = LoginForm()
    validate_form(form)

    profile = Profile.query.filter_by(email=form.email.data.strip().lower()).first()
    if not profile or not profile.check_password(form.password.data):
        log_security('auth', 'login_failed', form.email.data)
        db.session.commit()
        return jsonify({'success': False, 'error': 'Invalid email or password'}), 401
    if not profile.active:
        return jsonify({'success': False, 'error': 'Your account is deactivated'}), 403

    payload = _start_session(profile)
    profile.last_login = datetime.utcnow()
    log_event('auth', 'login', entity_type='Profile', entity_id=profile.id, user_id=profile.id)
    db.session.commit()
    return jsonify({'success': True, 'session': payload})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Sign out. Safe to call without a session."""
    if current_user.is_authenticated:
        log_event('auth', 'logout', user_id=current_user.id)
        db.session.commit()
        logout_user()
    session.pop('expires_at', None)
    return jsonify({'success': True})


@auth_bp.route('/session', methods=['GET'])
def get_session():
    """Return the current session or null."""
    if not current_user.is_authenticated:
        return jsonify({'session': None})
    return jsonify({'session': _session_payload(current_user)})


@auth_bp.route('/refresh', methods=['POST'])
@login_required
def refresh():
    """Extend the session lifetime."""
    lifetime = current_app.config['SESSION_LIFETIME']
    session['expires_at'] = int((datetime.utcnow() + lifetime).timestamp())
    return jsonify({'success': True, 'session': _session_payload(current_user)})


@auth_bp.route('/password', methods=['POST'])
@login_required
def change_password():
    """Change the password of the signed-in profile."""
    form = PasswordChangeForm()
    validate_form(form)

    if not current_user.check_password(form.current_password.data):
        raise ValidationError('Current password is incorrect')

    current_user.set_password(form.new_password.data)
    get_settings_service().mark_password_changed(current_user.id)
    log_security('auth', 'password_changed', entity_type='Profile', entity_id=current_user.id)
    db.session.commit()
    return jsonify({'success': True})


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    """Request a password reset. Always answers 200 to avoid account probing."""
    form = ResetPasswordForm()
    validate_form(form)

    profile = Profile.query.filter_by(email=form.email.data.strip().lower()).first()
    if profile:
        profile_settings = get_settings_service()
        profile_settings.get_user_settings(profile.id)
        profile.settings.password_change_required = True
        log_security(
            'auth',
            'password_reset_requested',
            profile.email,
            entity_type='Profile',
            entity_id=profile.id,
            user_id=profile.id
        )
        db.session.commit()
        current_app.logger.info(f'Password reset requested for profile {profile.id}')
    return jsonify({'success': True})
