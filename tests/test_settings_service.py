"""Tests for SettingsService: lazy rows, nested updates, Telegram linking."""
import pytest

from app import db
from app.errors import NotFound, TelegramNotVerifiedError, ValidationError
from app.models import AuditLog, UserSettings
from app.services import SettingsService, TelegramClient


@pytest.fixture
def service():
    return SettingsService()


@pytest.fixture
def bot(ctx, telegram):
    return TelegramClient.from_app(ctx)


def test_settings_row_created_on_first_access(ctx, service, make_profile):
    profile = make_profile()
    assert UserSettings.query.filter_by(user_id=profile.id).count() == 0

    settings = service.get_user_settings(profile.id)

    assert UserSettings.query.filter_by(user_id=profile.id).count() == 1
    assert settings['notifications']['telegram_notifications'] is True
    assert settings['telegram']['state'] == 'unlinked'

    service.get_user_settings(profile.id)
    assert UserSettings.query.filter_by(user_id=profile.id).count() == 1


def test_unknown_profile_raises_not_found(ctx, service):
    with pytest.raises(NotFound):
        service.get_user_settings(9999)


def test_nested_update_translated_to_columns(ctx, service, make_profile):
    profile = make_profile()

    settings = service.update_user_settings(profile.id, {
        'notifications': {'weekly_reports': True, 'telegram_notifications': False},
        'unknown': {'x': 1},
    })

    assert settings['notifications']['weekly_reports'] is True
    assert settings['notifications']['telegram_notifications'] is False
    row = UserSettings.query.filter_by(user_id=profile.id).one()
    assert row.weekly_reports is True
    assert AuditLog.query.filter_by(action='settings_updated').count() == 1


def test_empty_update_returns_current_settings(ctx, service, make_profile):
    profile = make_profile()
    before = service.get_user_settings(profile.id)

    after = service.update_user_settings(profile.id, {'notifications': {'nope': True}})

    assert after == before
    assert AuditLog.query.filter_by(action='settings_updated').count() == 0


def test_telegram_section_cannot_be_written_directly(ctx, service, make_profile):
    profile = make_profile()
    settings = service.update_user_settings(profile.id, {
        'telegram': {'chat_id': '123', 'is_connected': True},
    })
    assert settings['telegram']['chat_id'] is None
    assert settings['telegram']['is_connected'] is False


class TestTelegramLinking:

    def test_request_moves_to_pending(self, ctx, service, make_profile):
        profile = make_profile()

        settings = service.request_telegram_link(profile.id, 'jdoe')

        assert settings['telegram']['state'] == 'pending'
        assert settings['telegram']['username'] == '@jdoe'
        assert settings['telegram']['chat_id'] is None
        assert settings['telegram']['is_connected'] is False

    def test_blank_username_rejected(self, ctx, service, make_profile):
        profile = make_profile()
        with pytest.raises(ValidationError):
            service.request_telegram_link(profile.id, '  @ ')

    def test_verify_links_account(self, ctx, service, bot, telegram, make_profile):
        profile = make_profile()
        telegram.add_message('JDoe', 555)
        service.request_telegram_link(profile.id, '@jdoe')

        settings = service.verify_telegram_link(profile.id, client=bot)

        assert settings['telegram']['state'] == 'linked'
        assert settings['telegram']['chat_id'] == '555'
        assert settings['telegram']['is_connected'] is True
        assert settings['telegram']['connected_at'] is not None

    def test_unverified_handle_stays_pending(self, ctx, service, bot, telegram, make_profile):
        profile = make_profile()
        telegram.add_message('someone_else', 777)
        service.request_telegram_link(profile.id, 'jdoe')

        with pytest.raises(TelegramNotVerifiedError) as exc:
            service.verify_telegram_link(profile.id, client=bot)

        assert 'Message the bot with /start' in exc.value.message
        row = UserSettings.query.filter_by(user_id=profile.id).one()
        db.session.refresh(row)
        assert row.telegram_chat_id is None
        assert row.telegram_is_connected is False
        assert row.telegram_username == '@jdoe'

    def test_verify_without_pending_link(self, ctx, service, bot, make_profile):
        profile = make_profile()
        with pytest.raises(ValidationError):
            service.verify_telegram_link(profile.id, client=bot)

    def test_connect_in_one_step(self, ctx, service, bot, telegram, make_profile):
        profile = make_profile()
        telegram.add_message('jdoe', 101)

        settings = service.connect_telegram(profile.id, 'jdoe', client=bot)

        assert settings['telegram']['state'] == 'linked'

    def test_disconnect_clears_everything(self, ctx, service, make_profile, link_telegram):
        profile = make_profile()
        link_telegram(profile, '42')

        settings = service.disconnect_telegram(profile.id)

        assert settings['telegram'] == {
            'username': None,
            'chat_id': None,
            'is_connected': False,
            'connected_at': None,
            'state': 'unlinked',
        }
