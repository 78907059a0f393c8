"""Tests for authentication routes."""
import json


def test_register(client):
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'Test@Test.com',
        'password': 'password123', 'display_name': 'Test User',
    })
    assert res.status_code == 201
    data = json.loads(res.data)
    assert 'token' in data
    assert data['user']['username'] == 'testuser'
    assert data['user']['email'] == 'test@test.com'
    assert data['user']['display_name'] == 'Test User'


def test_register_missing_fields(client):
    res = client.post('/api/auth/register', json={'username': 'x'})
    assert res.status_code == 400


def test_register_duplicate_username(client):
    client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup2@test.com', 'password': 'password123',
    })
    assert res.status_code == 409


def test_register_duplicate_email(client):
    client.post('/api/auth/register', json={
        'username': 'first', 'email': 'same@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/register', json={
        'username': 'second', 'email': 'SAME@test.com', 'password': 'password123',
    })
    assert res.status_code == 409


def test_register_rejects_weak_password(client):
    res = client.post('/api/auth/register', json={
        'username': 'weakpw',
        'email': 'weakpw@test.com',
        'password': 'abcdefgh',
    })
    assert res.status_code == 400
    assert 'Password must' in json.loads(res.data)['error']


def test_login(client):
    client.post('/api/auth/register', json={
        'username': 'loginuser', 'email': 'login@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'login@test.com', 'password': 'password123',
    })
    assert res.status_code == 200
    data = json.loads(res.data)
    assert 'token' in data


def test_login_bad_password(client):
    client.post('/api/auth/register', json={
        'username': 'badpw', 'email': 'bad@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'bad@test.com', 'password': 'wrong',
    })
    assert res.status_code == 401


def test_profile_requires_auth(client):
    res = client.get('/api/auth/profile')
    assert res.status_code == 401

    res = client.get('/api/auth/profile', headers={'Authorization': 'Bearer not-a-token'})
    assert res.status_code == 401
    assert json.loads(res.data)['error'] == 'Invalid token'


def test_profile_returns_user_without_settings(client, auth_headers):
    res = client.get('/api/auth/profile', headers=auth_headers)
    assert res.status_code == 200
    user = json.loads(res.data)['user']
    assert user['username'] == 'testuser'
    assert user['settings'] is None


def test_update_settings_saves_normalized_contact_email(client, auth_headers):
    res = client.put('/api/auth/settings', json={
        'email': '  Alerts@Example.COM ', 'timezone': 'America/Los_Angeles',
    }, headers=auth_headers)
    assert res.status_code == 200
    settings = json.loads(res.data)['user']['settings']
    assert settings['email'] == 'alerts@example.com'
    assert settings['timezone'] == 'America/Los_Angeles'

    res = client.put('/api/auth/settings', json={'email': ''}, headers=auth_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['user']['settings']['email'] is None


def test_update_settings_rejects_invalid_email(client, auth_headers):
    res = client.put('/api/auth/settings', json={'email': 'not-an-email'}, headers=auth_headers)
    assert res.status_code == 400
    assert 'valid email' in json.loads(res.data)['error']


def test_settings_email_feeds_contact_resolver(client, app, auth_headers):
    from playerhoods.models import User
    from playerhoods.services.email_service import SettingsContactResolver

    client.put('/api/auth/settings', json={'email': 'me@example.com'}, headers=auth_headers)
    user = User.query.filter_by(username='testuser').first()
    resolver = SettingsContactResolver()
    assert resolver.lookup_email(user.id) == 'me@example.com'
    assert resolver.lookup_email(user.id + 999) is None


def test_non_object_json_bodies_are_rejected(client):
    res = client.post('/api/auth/register', json=['testuser', 'test@test.com'])
    assert res.status_code == 400
    assert json.loads(res.data)['error'] == 'Invalid JSON payload'

    res = client.post('/api/auth/login', json=['login@test.com', 'password123'])
    assert res.status_code == 400
