from __future__ import annotations

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from api_support import bind_tablet, build_app, login_manager, make_settings, seed
from restaurant_ops.config import Settings
from restaurant_ops.security.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME


class CsrfTests(unittest.TestCase):
    def setUp(self) -> None:
        self.app = build_app(csrf_enabled=True)
        self.data = seed(self.app.state.session_factory)
        self.client = TestClient(self.app)
        login_manager(self.client)

    def test_mutation_without_header_is_rejected(self) -> None:
        response = self.client.post('/location-sessions', json={'deviceFingerprint': 'fp', 'name': 'Bar'})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['code'], 'CSRF_FAILED')

    def test_mutation_with_matching_header_is_accepted(self) -> None:
        token = self.client.cookies.get(CSRF_COOKIE_NAME)
        self.assertTrue(token)
        response = self.client.post(
            '/location-sessions',
            json={'deviceFingerprint': 'fp', 'name': 'Bar'},
            headers={CSRF_HEADER_NAME: token},
        )
        self.assertEqual(response.status_code, 201)

    def test_reads_do_not_need_a_token(self) -> None:
        self.assertEqual(self.client.get('/location-sessions').status_code, 200)


class ResponseHeaderTests(unittest.TestCase):
    def test_health_is_public_and_hardened(self) -> None:
        client = TestClient(build_app())
        response = client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')
        self.assertEqual(response.headers['x-content-type-options'], 'nosniff')
        self.assertIn('noindex', response.headers['x-robots-tag'])


class StoreFailureTests(unittest.TestCase):
    def test_store_errors_during_pin_login_return_generic_failure(self) -> None:
        app = build_app()
        data = seed(app.state.session_factory)
        location_session_id = bind_tablet(app, data)
        client = TestClient(app)

        with patch(
            'restaurant_ops.services.pin_auth_service.get_valid_location_session',
            side_effect=OperationalError('SELECT', {}, Exception('connection lost')),
        ):
            response = client.post(
                '/auth/staff-pin-login',
                json={'pin': '1111', 'locationSessionId': location_session_id, 'deviceFingerprint': 'tablet-fp-001'},
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()['error'], 'Service unavailable')
        self.assertNotIn('1111', response.text)


class SettingsTests(unittest.TestCase):
    def test_production_requires_a_real_secret(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(environment='production', app_secret_key='change-me')
        with self.assertRaises(ValidationError):
            Settings(environment='production', app_secret_key='short')

        settings = Settings(environment='production', app_secret_key='x' * 40)
        self.assertTrue(settings.session_cookie_secure)

    def test_rejects_unknown_log_level_and_bad_ttl(self) -> None:
        with self.assertRaises(ValidationError):
            make_settings(log_level='CHATTY')
        with self.assertRaises(ValidationError):
            make_settings(session_ttl_minutes=0)

    def test_postgres_urls_use_psycopg_driver(self) -> None:
        settings = make_settings(database_url='postgres://user:pw@db:5432/ops')
        self.assertEqual(settings.database_url_normalized, 'postgresql+psycopg://user:pw@db:5432/ops')
        self.assertFalse(settings.session_cookie_secure)
