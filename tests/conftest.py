import threading

import pytest
from playerhoods.app import create_app, db
from playerhoods.services.email_service import (
    CONTACTS_EXTENSION_KEY, SINK_EXTENSION_KEY, SendResult,
)


class FakeSink:
    """Records every send; addresses in ``failing`` fail, ``raising`` raise."""

    def __init__(self):
        self.sent = []
        self.failing = set()
        self.raising = set()

    def send(self, address, subject, payload):
        if address in self.raising:
            raise RuntimeError(f'transport down for {address}')
        self.sent.append({'address': address, 'subject': subject, 'payload': payload})
        if address in self.failing:
            return SendResult(success=False, error='rejected')
        return SendResult(success=True)


class FakeContacts:
    def __init__(self):
        self.addresses = {}

    def lookup_email(self, user_id):
        return self.addresses.get(user_id)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sink(app):
    fake = FakeSink()
    app.extensions[SINK_EXTENSION_KEY] = fake
    return fake


@pytest.fixture
def contacts(app):
    fake = FakeContacts()
    app.extensions[CONTACTS_EXTENSION_KEY] = fake
    return fake


@pytest.fixture
def auth_headers(client):
    """Register a user and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'test@example.com',
        'password': 'password123', 'display_name': 'Test User',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database so threads get their own connections."""
    from playerhoods.config import TestingConfig
    monkeypatch.setattr(
        TestingConfig, 'SQLALCHEMY_DATABASE_URI', f'sqlite:///{tmp_path / "concurrency.db"}',
    )
    monkeypatch.setattr(
        TestingConfig, 'SQLALCHEMY_ENGINE_OPTIONS',
        {'connect_args': {'timeout': 30}}, raising=False,
    )
    app = create_app('testing')
    app.extensions[SINK_EXTENSION_KEY] = FakeSink()
    app.extensions[CONTACTS_EXTENSION_KEY] = FakeContacts()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_concurrently(app, *calls):
    """Run each call in its own thread and app context, started together.

    Returns ``(result, error)`` pairs in call order.
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(index, call):
        with app.app_context():
            barrier.wait()
            try:
                outcomes[index] = (call(), None)
            except Exception as exc:
                outcomes[index] = (None, exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


@pytest.fixture
def run_concurrently(file_app):
    return lambda *calls: _run_concurrently(file_app, *calls)
