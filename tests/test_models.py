"""Tests for model helpers: roles, settings translation, ticket serialization."""
from datetime import datetime

from app.models import ProfileRole, TelegramLinkState, UserSettings


class TestProfileRoles:

    def test_admin_accesses_every_base(self, ctx, make_profile, make_base):
        admin = make_profile(role=ProfileRole.ADMIN.value, bases=())
        other = make_base('North Base')
        assert admin.can_access_base(other.id)
        assert admin.can_view_all_tickets()
        assert admin.can_manage_tickets()

    def test_his_limited_to_member_bases(self, ctx, make_profile, make_base):
        his = make_profile(role=ProfileRole.HIS.value, bases=('Headquarters',))
        north = make_base('North Base')
        assert his.can_access_base(his.bases[0].id)
        assert not his.can_access_base(north.id)
        assert his.can_manage_tickets()
        assert not his.can_view_all_tickets()

    def test_user_and_viewer_capabilities(self, ctx, make_profile):
        user = make_profile(role=ProfileRole.USER.value)
        viewer = make_profile(role=ProfileRole.VIEWER.value)

        assert user.can_create_tickets()
        assert not user.can_manage_tickets()
        assert not user.can_view_reports()

        assert not viewer.can_create_tickets()
        assert viewer.can_view_reports()

    def test_can_view_ticket(self, ctx, make_profile, make_ticket):
        owner = make_profile()
        stranger = make_profile()
        his = make_profile(role=ProfileRole.HIS.value)
        his_elsewhere = make_profile(role=ProfileRole.HIS.value, bases=('South Base',))
        ticket = make_ticket(owner)

        assert owner.can_view_ticket(ticket)
        assert not stranger.can_view_ticket(ticket)
        assert his.can_view_ticket(ticket)
        assert not his_elsewhere.can_view_ticket(ticket)

    def test_password_hashing(self, ctx, make_profile):
        profile = make_profile(password='correct horse')
        assert profile.password_hash != 'correct horse'
        assert profile.check_password('correct horse')
        assert not profile.check_password('wrong')


class TestUserSettings:

    def test_to_nested_has_three_sections(self):
        settings = UserSettings(
            email_notifications=True,
            telegram_notifications=False,
            ticket_updates=True,
            assignment_notifications=True,
            weekly_reports=False,
            password_change_required=False,
            telegram_username='@jdoe',
            telegram_chat_id='42',
            telegram_is_connected=True,
            telegram_connected_at=datetime(2026, 1, 2, 3, 4, 5),
        )
        nested = settings.to_nested()

        assert set(nested) == {'notifications', 'security', 'telegram'}
        assert nested['notifications']['telegram_notifications'] is False
        assert nested['telegram'] == {
            'username': '@jdoe',
            'chat_id': '42',
            'is_connected': True,
            'connected_at': '2026-01-02T03:04:05',
            'state': 'linked',
        }

    def test_flatten_ignores_unknown_keys(self):
        flat = UserSettings.flatten({
            'notifications': {'weekly_reports': True, 'sms': True},
            'security': {'password_change_required': True},
            'appearance': {'theme': 'dark'},
        })
        assert flat == {'weekly_reports': True, 'password_change_required': True}

    def test_telegram_state_derived_from_columns(self):
        assert UserSettings().telegram_state == TelegramLinkState.UNLINKED
        assert UserSettings(telegram_username='@a').telegram_state == TelegramLinkState.PENDING
        linked = UserSettings(telegram_username='@a', telegram_chat_id='1', telegram_is_connected=True)
        assert linked.telegram_state == TelegramLinkState.LINKED

    def test_receives_telegram_needs_enabled_and_connected(self):
        assert UserSettings(
            telegram_notifications=True, telegram_is_connected=True, telegram_chat_id='1'
        ).receives_telegram
        assert not UserSettings(
            telegram_notifications=False, telegram_is_connected=True, telegram_chat_id='1'
        ).receives_telegram
        assert not UserSettings(
            telegram_notifications=True, telegram_is_connected=False, telegram_chat_id='1'
        ).receives_telegram


def test_ticket_to_dict_joins_names(ctx, make_profile, make_ticket):
    creator = make_profile(full_name='Jane Doe')
    his = make_profile(role=ProfileRole.HIS.value, full_name='Hank Support')
    ticket = make_ticket(creator, assignee=his)

    data = ticket.to_dict()

    assert data['creator_profile'] == {'full_name': 'Jane Doe'}
    assert data['assignee_profile'] == {'full_name': 'Hank Support'}
    assert data['base_name'] == 'Headquarters'
    assert data['status'] == 'Open'
    assert data['attachment_urls'] == []
