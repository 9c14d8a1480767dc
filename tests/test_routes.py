"""Tests for the JSON API blueprints."""
import io

import pytest

from app import db
from app.models import ProfileRole, Ticket


@pytest.fixture
def accounts(app, make_profile, make_base):
    """Create one profile per role and return their emails and ids."""
    with app.app_context():
        make_base('South Base')
        profiles = {
            'admin': make_profile(role=ProfileRole.ADMIN.value, email='admin@example.com', full_name='Ada Admin'),
            'his': make_profile(role=ProfileRole.HIS.value, email='his@example.com', full_name='Hank Support'),
            'user': make_profile(role=ProfileRole.USER.value, email='user@example.com', full_name='Jane Doe'),
            'viewer': make_profile(role=ProfileRole.VIEWER.value, email='viewer@example.com'),
        }
        return {key: {'id': p.id, 'email': p.email, 'base_id': p.base_ids[0]} for key, p in profiles.items()}


class TestAuth:

    def test_signup_signs_in(self, app, client, make_base):
        with app.app_context():
            base_id = make_base().id

        response = client.post('/api/auth/signup', json={
            'email': 'New@Example.com',
            'password': 'secret123',
            'full_name': 'New Person',
            'base_ids': [base_id],
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['profile']['role'] == 'User'
        assert data['session']['user']['email'] == 'new@example.com'
        assert data['session']['expires_at'] > 0

        session = client.get('/api/auth/session').get_json()['session']
        assert session['user']['email'] == 'new@example.com'

    def test_signup_rejects_short_password(self, client):
        response = client.post('/api/auth/signup', json={
            'email': 'a@example.com', 'password': '123', 'full_name': 'A',
        })
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_login_session_logout(self, client, accounts, login):
        assert client.get('/api/auth/session').get_json() == {'session': None}

        login(accounts['user']['email'])
        session = client.get('/api/auth/session').get_json()['session']
        assert session['user'] == {'id': accounts['user']['id'], 'email': 'user@example.com'}

        assert client.post('/api/auth/logout').status_code == 200
        assert client.get('/api/auth/session').get_json() == {'session': None}

    def test_wrong_password(self, client, accounts):
        response = client.post('/api/auth/login', json={'email': 'user@example.com', 'password': 'nope'})

        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Invalid email or password'}

    def test_expired_session_is_dropped(self, client, accounts, login):
        login(accounts['user']['email'])
        with client.session_transaction() as session:
            session['expires_at'] = 1

        assert client.get('/api/auth/session').get_json() == {'session': None}
        assert client.get('/api/tickets').status_code == 401

    def test_refresh_extends_session(self, client, accounts, login):
        login(accounts['user']['email'])
        with client.session_transaction() as session:
            session['expires_at'] = 4102444800  # far future, but fixed

        response = client.post('/api/auth/refresh')

        assert response.status_code == 200
        assert response.get_json()['session']['expires_at'] != 4102444800

    def test_change_password(self, client, accounts, login):
        login(accounts['user']['email'])

        bad = client.post('/api/auth/password', json={'current_password': 'x', 'new_password': 'newsecret'})
        assert bad.status_code == 400

        ok = client.post('/api/auth/password', json={'current_password': 'secret123', 'new_password': 'newsecret'})
        assert ok.status_code == 200
        client.post('/api/auth/logout')
        login(accounts['user']['email'], 'newsecret')

    def test_reset_password_does_not_reveal_accounts(self, client, accounts):
        known = client.post('/api/auth/reset-password', json={'email': 'user@example.com'})
        unknown = client.post('/api/auth/reset-password', json={'email': 'ghost@example.com'})

        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json() == {'success': True}


class TestAccessControl:

    def test_anonymous_gets_json_401(self, client):
        response = client.get('/api/tickets')

        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_viewer_cannot_create_ticket(self, client, accounts, login):
        login(accounts['viewer']['email'])

        response = client.post('/api/tickets', json={'title': 't', 'description': 'd'})

        assert response.status_code == 403

    def test_user_cannot_change_status(self, app, client, accounts, login):
        login(accounts['user']['email'])
        ticket = client.post('/api/tickets', json={'title': 't', 'description': 'd'}).get_json()['ticket']

        response = client.post(f"/api/tickets/{ticket['id']}/status", json={'status': 'Resolved'})

        assert response.status_code == 403

    def test_admin_endpoints_need_admin(self, client, accounts, login):
        login(accounts['his']['email'])
        assert client.get('/api/admin/bases').status_code == 403
        assert client.get('/api/admin/reports').status_code == 200


class TestTickets:

    def test_create_list_and_history(self, app, client, accounts, login):
        login(accounts['user']['email'])

        created = client.post('/api/tickets', json={
            'title': 'Laptop broken', 'description': 'Screen flickers', 'priority': 'High',
        })
        assert created.status_code == 201
        ticket = created.get_json()['ticket']
        assert ticket['status'] == 'Open'
        assert ticket['creator_profile'] == {'full_name': 'Jane Doe'}

        listed = client.get('/api/tickets').get_json()['tickets']
        assert [t['id'] for t in listed] == [ticket['id']]

        client.post('/api/auth/logout')
        login(accounts['his']['email'])

        status = client.post(f"/api/tickets/{ticket['id']}/status", json={'status': 'In Progress'})
        assert status.status_code == 200
        assert status.get_json()['entry']['new_value'] == 'In Progress'

        assign = client.post(f"/api/tickets/{ticket['id']}/assign", json={'assignee_id': accounts['his']['id']})
        assert assign.status_code == 200
        assert assign.get_json()['ticket']['assignee_profile'] == {'full_name': 'Hank Support'}

        comment = client.post(f"/api/tickets/{ticket['id']}/comments", json={'comment': 'On it'})
        assert comment.status_code == 201

        history = client.get(f"/api/tickets/{ticket['id']}/comments").get_json()['history']
        assert {h['comment_type'] for h in history} == {'status_change', 'assignment', 'comment'}

    def test_invalid_priority_rejected(self, client, accounts, login):
        login(accounts['user']['email'])

        response = client.post('/api/tickets', json={'title': 't', 'description': 'd', 'priority': 'Urgent'})

        assert response.status_code == 400

    def test_other_users_ticket_hidden(self, app, client, accounts, login, make_profile, make_ticket):
        with app.app_context():
            ticket_id = make_ticket(make_profile()).id
        login(accounts['user']['email'])

        assert client.get(f'/api/tickets/{ticket_id}').status_code == 403
        assert client.get('/api/tickets/99999').status_code == 404

    def test_upload_and_fetch_attachment(self, app, client, accounts, login):
        login(accounts['user']['email'])
        ticket = client.post('/api/tickets', json={'title': 't', 'description': 'd'}).get_json()['ticket']

        response = client.post(
            f"/api/tickets/{ticket['id']}/attachments",
            data={'file': (io.BytesIO(b'image-bytes'), 'shot.png')},
            content_type='multipart/form-data'
        )

        assert response.status_code == 201
        url = response.get_json()['url']
        assert client.get(url).data == b'image-bytes'
        with app.app_context():
            assert db.session.get(Ticket, ticket['id']).attachment_urls == [url]

    def test_attachment_needs_ticket_visibility(self, app, client, accounts, login, make_profile):
        with app.app_context():
            make_profile(email='other@example.com', full_name='Otto Other')
        login(accounts['user']['email'])
        ticket = client.post('/api/tickets', json={'title': 't', 'description': 'd'}).get_json()['ticket']
        url = client.post(
            f"/api/tickets/{ticket['id']}/attachments",
            data={'file': (io.BytesIO(b'private'), 'scan.pdf')},
            content_type='multipart/form-data'
        ).get_json()['url']
        client.post('/api/auth/logout')

        login('other@example.com')
        assert client.get(url).status_code == 403
        assert client.get('/api/tickets/attachments/elsewhere/scan.pdf').status_code == 404
        client.post('/api/auth/logout')

        login(accounts['admin']['email'])
        assert client.get(url).data == b'private'

    def test_stats(self, client, accounts, login):
        login(accounts['user']['email'])
        client.post('/api/tickets', json={'title': 't', 'description': 'd'})

        stats = client.get('/api/tickets/stats').get_json()['stats']

        assert stats['total'] == 1
        assert stats['open'] == 1


class TestSettingsAndProfiles:

    def test_settings_roundtrip(self, client, accounts, login):
        login(accounts['user']['email'])

        settings = client.get('/api/settings').get_json()['settings']
        assert settings['telegram']['state'] == 'unlinked'

        updated = client.patch('/api/settings', json={'notifications': {'weekly_reports': True}})
        assert updated.get_json()['settings']['notifications']['weekly_reports'] is True

    def test_telegram_link_flow(self, client, accounts, login, telegram):
        login(accounts['user']['email'])

        pending = client.post('/api/settings/telegram', json={'username': '@JaneD'})
        assert pending.get_json()['settings']['telegram']['state'] == 'pending'

        not_yet = client.post('/api/settings/telegram/verify')
        assert not_yet.status_code == 400

        telegram.add_message('janed', 4242)
        linked = client.post('/api/settings/telegram/verify').get_json()['settings']['telegram']
        assert linked['state'] == 'linked'
        assert linked['chat_id'] == '4242'

        gone = client.delete('/api/settings/telegram').get_json()['settings']['telegram']
        assert gone['state'] == 'unlinked'

    def test_profile_me_and_others(self, client, accounts, login):
        login(accounts['user']['email'])

        renamed = client.patch('/api/profiles/me', json={'full_name': 'Jane Q. Doe'})
        assert renamed.get_json()['profile']['full_name'] == 'Jane Q. Doe'
        assert client.get(f"/api/profiles/{accounts['his']['id']}").status_code == 403

    def test_managers_for_base(self, client, accounts, login):
        login(accounts['his']['email'])

        response = client.get(f"/api/profiles/managers?base_id={accounts['his']['base_id']}")

        names = {p['full_name'] for p in response.get_json()['profiles']}
        assert names == {'Ada Admin', 'Hank Support'}


class TestAdmin:

    def test_create_base_and_assign(self, client, accounts, login):
        login(accounts['admin']['email'])

        base = client.post('/api/admin/bases', json={'name': 'North Base'}).get_json()['base']
        response = client.put(
            f"/api/admin/profiles/{accounts['user']['id']}/bases",
            json={'base_ids': [base['id']]}
        )

        assert response.status_code == 200
        assert response.get_json()['profile']['bases'] == [{'id': base['id'], 'name': 'North Base'}]

    def test_cannot_demote_self(self, client, accounts, login):
        login(accounts['admin']['email'])

        response = client.put(f"/api/admin/profiles/{accounts['admin']['id']}/role", json={'role': 'User'})

        assert response.status_code == 400

    def test_promote_user(self, client, accounts, login):
        login(accounts['admin']['email'])

        response = client.put(f"/api/admin/profiles/{accounts['user']['id']}/role", json={'role': 'HIS'})

        assert response.get_json()['profile']['role'] == 'HIS'

    def test_audit_log_records_logins(self, client, accounts, login):
        login(accounts['admin']['email'])

        entries = client.get('/api/admin/audit-log?module=auth').get_json()['entries']

        assert any(e['action'] == 'login' for e in entries)

    def test_health(self, client):
        assert client.get('/api/admin/health').get_json() == {'status': 'ok'}
