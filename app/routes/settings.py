"""User settings routes.

Blueprint: settings_bp
Prefix: /api/settings
"""
from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Length

from app.services import get_settings_service
from app.utils import get_json_body, validate_form

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


class TelegramLinkForm(FlaskForm):
    username = StringField('Telegram username', validators=[DataRequired(), Length(max=64)])


@settings_bp.route('', methods=['GET'])
@login_required
def get_settings():
    """Nested settings of the current profile."""
    settings = get_settings_service().get_user_settings(current_user.id)
    return jsonify({'success': True, 'settings': settings})


@settings_bp.route('', methods=['PATCH'])
@login_required
def update_settings():
    """Partial nested update; unknown keys are ignored."""
    settings = get_settings_service().update_user_settings(current_user.id, get_json_body())
    return jsonify({'success': True, 'settings': settings})


@settings_bp.route('/telegram', methods=['POST'])
@login_required
def request_telegram_link():
    """Save the Telegram handle; the link is pending until verified."""
    form = TelegramLinkForm()
    validate_form(form)
    settings = get_settings_service().request_telegram_link(current_user.id, form.username.data)
    return jsonify({'success': True, 'settings': settings})


@settings_bp.route('/telegram/verify', methods=['POST'])
@login_required
def verify_telegram_link():
    """Verify the pending handle against the bot's recent messages."""
    settings = get_settings_service().verify_telegram_link(current_user.id)
    return jsonify({'success': True, 'settings': settings})


@settings_bp.route('/telegram', methods=['DELETE'])
@login_required
def disconnect_telegram():
    settings = get_settings_service().disconnect_telegram(current_user.id)
    return jsonify({'success': True, 'settings': settings})
