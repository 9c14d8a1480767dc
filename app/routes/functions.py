"""Notification functions.

Blueprint: functions_bp
Prefix: /functions

The two Telegram endpoints called by the browser. CORS is open for this
blueprint (see create_app); preflight requests are answered by Flask-CORS.
Error bodies keep the shape the callers expect: the notification endpoint
answers ``{"error": ...}``, the connect endpoint ``{"success": false, "error": ...}``.
"""
import asyncio

from flask import Blueprint, current_app, jsonify

from app.errors import HelpdeskError
from app.services import NotificationDispatcher, NotificationRequest, TelegramClient
from app.services.telegram_service import normalize_username
from app.utils import get_json_body

functions_bp = Blueprint('functions', __name__, url_prefix='/functions')


@functions_bp.route('/send-telegram-notification', methods=['POST'])
def send_telegram_notification():
    """Fan a ticket notification out to Telegram.

    Body: ``{type, ticket_id, message, chat_ids?}``. Without chat_ids every
    opted-in profile is notified.
    """
    try:
        notification = NotificationRequest.from_json(get_json_body())
        result = NotificationDispatcher.from_app(current_app).dispatch(notification)
    except HelpdeskError as e:
        return jsonify({'error': e.message}), e.status_code
    except Exception as e:
        current_app.logger.exception(f'Internal error in send-telegram-notification: {e}')
        return jsonify({'error': 'Internal Server Error'}), 500

    return jsonify(result.to_dict())


@functions_bp.route('/telegram-connect', methods=['POST'])
def telegram_connect():
    """Resolve a Telegram handle to the chat id of its last message to the bot.

    Body: ``{user_id, username}``. Nothing is persisted here; linking is
    done by the settings service.
    """
    data = get_json_body()
    user_id = data.get('user_id')
    username = normalize_username(data.get('username'))

    if not user_id or not username:
        return jsonify({'success': False, 'error': "Missing 'user_id' or 'username'"}), 400

    try:
        client = TelegramClient.from_app(current_app)
        updates = asyncio.run(client.get_updates())
    except HelpdeskError as e:
        return jsonify({'success': False, 'error': e.message}), e.status_code
    except Exception as e:
        current_app.logger.exception(f'Unexpected error in telegram-connect: {e}')
        return jsonify({'success': False, 'error': 'Internal error'}), 500

    chat_id = client.find_chat_id(updates, username)
    if not chat_id:
        return jsonify({
            'success': False,
            'error': 'Telegram user not verified. Message the bot with /start.',
        }), 400

    current_app.logger.info(f'Telegram user @{username} resolved for profile {user_id}')
    return jsonify({'success': True, 'chat_id': chat_id})
