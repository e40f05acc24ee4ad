import pytest

import events
from app import create_app
from config import TestConfig


@pytest.fixture
def app(tmp_path):
    class Config(TestConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(Config)
    yield app
    events.online_users.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signup(app):
    """Create a user and return a test client logged in as that user."""
    def _signup(username, password='secret123', **extra):
        c = app.test_client()
        resp = c.post('/signup', json={'username': username, 'password': password, **extra})
        assert resp.status_code == 201, resp.get_json()
        return c
    return _signup


@pytest.fixture
def befriend():
    def _befriend(client_a, client_b, username_b):
        client_a.post('/friend/request', json={'to': username_b})
        req = client_b.get('/friend/requests').get_json()['requests'][0]
        resp = client_b.post('/friend/respond', json={'id': req['id'], 'accept': True})
        assert resp.status_code == 200
    return _befriend


@pytest.fixture
def socket_for(app):
    def _socket_for(flask_client):
        return events.socketio.test_client(app, flask_test_client=flask_client)
    return _socket_for


def received(socket_client, name):
    return [item['args'][0] for item in socket_client.get_received() if item['name'] == name]
