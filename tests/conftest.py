"""Shared fixtures: app on TestingConfig, profiles, tickets and a fake Bot API."""
import json

import httpx
import pytest

from app import create_app, db as _db
from app.models import Base, Profile, ProfileRole, Ticket, UserSettings


@pytest.fixture
def app(tmp_path):
    """Application on an in-memory database, no app context pushed."""
    app = create_app('testing')
    app.config['STORAGE_DIR'] = tmp_path / 'attachments'

    with app.app_context():
        _db.create_all()

    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def ctx(app):
    """Push an app context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_base():
    def _make(name='Headquarters'):
        base = Base.query.filter_by(name=name).first()
        if base is None:
            base = Base(name=name)
            _db.session.add(base)
            _db.session.commit()
        return base
    return _make


@pytest.fixture
def make_profile(make_base):
    counter = {'n': 0}

    def _make(role=ProfileRole.USER.value, bases=('Headquarters',), email=None,
              full_name=None, password='secret123'):
        counter['n'] += 1
        profile = Profile(
            email=email or f'user{counter["n"]}@example.com',
            full_name=full_name or f'{role} User {counter["n"]}',
            role=role
        )
        profile.set_password(password)
        profile.bases = [make_base(name) for name in bases]
        _db.session.add(profile)
        _db.session.commit()
        return profile
    return _make


@pytest.fixture
def make_ticket():
    def _make(creator, title='Printer offline', description='The printer in room 4 is offline.',
              priority='Medium', status='Open', base=None, assignee=None):
        ticket = Ticket(
            title=title,
            description=description,
            priority=priority,
            status=status,
            base_id=(base or creator.bases[0]).id,
            created_by=creator.id,
            assigned_to=assignee.id if assignee else None,
            attachment_urls=[]
        )
        _db.session.add(ticket)
        _db.session.commit()
        return ticket
    return _make


@pytest.fixture
def link_telegram():
    """Give a profile a linked Telegram account."""
    def _link(profile, chat_id, notifications=True, connected=True):
        settings = UserSettings.query.filter_by(user_id=profile.id).first()
        if settings is None:
            settings = UserSettings(user_id=profile.id)
            _db.session.add(settings)
        settings.telegram_username = f'@user{profile.id}'
        settings.telegram_chat_id = chat_id
        settings.telegram_is_connected = connected
        settings.telegram_notifications = notifications
        _db.session.commit()
        return settings
    return _link


class FakeTelegram:
    """Records Bot API calls made through httpx.MockTransport."""

    def __init__(self):
        self.sent = []
        self.fail_chat_ids = set()
        self.updates = []
        self.updates_status = 200
        self.get_updates_calls = 0

    @property
    def sent_chat_ids(self):
        return [str(payload['chat_id']) for payload in self.sent]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit('/', 1)[-1]
        if method == 'sendMessage':
            payload = json.loads(request.content)
            self.sent.append(payload)
            if str(payload['chat_id']) in self.fail_chat_ids:
                return httpx.Response(400, json={'ok': False, 'description': 'Bad Request: chat not found'})
            return httpx.Response(200, json={'ok': True, 'result': {'message_id': len(self.sent)}})
        if method == 'getUpdates':
            self.get_updates_calls += 1
            return httpx.Response(self.updates_status, json={'ok': True, 'result': self.updates})
        return httpx.Response(404, json={'ok': False})

    def add_message(self, username, chat_id):
        self.updates.append({
            'update_id': len(self.updates) + 1,
            'message': {
                'from': {'id': int(chat_id), 'username': username},
                'chat': {'id': int(chat_id)},
                'text': '/start',
            },
        })


@pytest.fixture
def telegram(app):
    fake = FakeTelegram()
    app.extensions['telegram_transport'] = httpx.MockTransport(fake.handler)
    return fake


@pytest.fixture
def login(client):
    def _login(email, password='secret123'):
        response = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login
