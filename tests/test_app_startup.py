"""Tests for app startup helpers and production origin handling."""
import json
import logging

import pytest

from playerhoods.app import _parse_allowed_origins, create_app
from playerhoods.config import ProductionConfig
from playerhoods.log import APP_LOGGER_NAME, setup_logging


def test_parse_allowed_origins():
    assert _parse_allowed_origins('') == '*'
    assert _parse_allowed_origins('*') == '*'
    assert _parse_allowed_origins('https://a.example.com, https://b.example.com') == [
        'https://a.example.com', 'https://b.example.com',
    ]
    assert _parse_allowed_origins(['https://a.example.com', '']) == ['https://a.example.com']


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.setattr(ProductionConfig, 'SECRET_KEY', 'dev-secret-key-change-in-prod')
    monkeypatch.setattr(ProductionConfig, 'CORS_ALLOWED_ORIGINS', 'https://app.example.com')
    with pytest.raises(RuntimeError, match='SECRET_KEY'):
        create_app('production')


def test_production_requires_explicit_origins(monkeypatch):
    monkeypatch.setattr(ProductionConfig, 'SECRET_KEY', 'a-real-secret')
    monkeypatch.setattr(ProductionConfig, 'CORS_ALLOWED_ORIGINS', '*')
    with pytest.raises(RuntimeError, match='CORS_ALLOWED_ORIGINS'):
        create_app('production')


def test_wildcard_origins_accept_any_origin(client):
    res = client.post('/api/auth/login', json={}, headers={'Origin': 'https://evil.example.com'})
    assert res.status_code == 400
    assert 'required' in json.loads(res.data)['error']


def test_setup_logging_sets_app_level_without_duplicate_handlers():
    setup_logging('DEBUG')
    handlers = list(logging.getLogger().handlers)
    setup_logging('warning')
    assert logging.getLogger().handlers == handlers
    assert logging.getLogger(APP_LOGGER_NAME).level == logging.WARNING

    setup_logging('not-a-level')
    assert logging.getLogger(APP_LOGGER_NAME).level == logging.INFO
