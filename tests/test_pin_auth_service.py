from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from sqlalchemy import select

from api_support import TABLET_FINGERPRINT, bind_tablet, build_app, seed
from restaurant_ops.models import AuditLog, AuthEvent, LocationSession, User, UserSession, UserSessionType
from restaurant_ops.security.passwords import hash_pin
from restaurant_ops.services.pin_auth_service import (
    InvalidLocationSession,
    InvalidPin,
    authenticate_staff_pin,
    find_staff_by_pin,
    validate_pin_login_input,
)


class PinInputTests(unittest.TestCase):
    def test_rejects_malformed_pins(self) -> None:
        for pin in ['', '123', '12345', 'abcd', '12a4', ' 1234', '1234\n', None, 1234]:
            with self.assertRaises(ValueError):
                validate_pin_login_input(pin, 'session', 'fingerprint')

    def test_rejects_non_ascii_digits(self) -> None:
        for pin in ['١٢٣٤', '１２３４', '۱۲۳۴']:
            with self.assertRaises(ValueError):
                validate_pin_login_input(pin, 'session', 'fingerprint')

    def test_requires_session_and_fingerprint(self) -> None:
        with self.assertRaises(ValueError):
            validate_pin_login_input('1234', '', 'fingerprint')
        with self.assertRaises(ValueError):
            validate_pin_login_input('1234', 'session', '   ')
        validate_pin_login_input('1234', 'session', 'fingerprint')

    def test_first_matching_staff_wins(self) -> None:
        staff = [
            SimpleNamespace(id=1, pin_hash=hash_pin('5555')),
            SimpleNamespace(id=2, pin_hash=hash_pin('4321')),
            SimpleNamespace(id=3, pin_hash=hash_pin('4321')),
            SimpleNamespace(id=4, pin_hash=None),
        ]
        self.assertEqual(find_staff_by_pin(staff, '4321').id, 2)
        self.assertIsNone(find_staff_by_pin(staff, '0000'))


class AuthenticateStaffPinTests(unittest.TestCase):
    def setUp(self) -> None:
        self.app = build_app()
        self.data = seed(self.app.state.session_factory)
        self.location_session_id = bind_tablet(self.app, self.data)
        self.settings = self.app.state.settings

    def _authenticate(self, db, pin: str, *, fingerprint: str = TABLET_FINGERPRINT, now: datetime | None = None):
        return authenticate_staff_pin(
            db,
            self.settings,
            pin=pin,
            location_session_id=self.location_session_id,
            device_fingerprint=fingerprint,
            ip='10.0.0.5',
            user_agent='tablet',
            now=now,
        )

    def test_success_creates_location_bound_session(self) -> None:
        with self.app.state.session_factory() as db:
            result = self._authenticate(db, '2222')
            db.commit()

            self.assertEqual(result.user.id, self.data.staff_ids[1])
            user_session = db.execute(select(UserSession).where(UserSession.id == result.user_session.id)).scalar_one()
            self.assertEqual(user_session.session_type, UserSessionType.LOCATION_BOUND)
            self.assertEqual(user_session.location_session_id, self.location_session_id)
            self.assertEqual(user_session.location_bound_restaurant_id, self.data.restaurant_id)
            self.assertEqual(user_session.device_fingerprint, TABLET_FINGERPRINT)
            self.assertEqual(
                user_session.expires_at - user_session.last_seen_at,
                timedelta(minutes=self.settings.session_ttl_minutes),
            )

            location_session = db.get(LocationSession, self.location_session_id)
            self.assertEqual(location_session.last_staff_user_id, result.user.id)
            self.assertIsNotNone(location_session.last_staff_login_at)

            audit = db.execute(select(AuditLog).where(AuditLog.action == 'AUTH_STAFF_PIN_LOGIN')).scalar_one()
            self.assertEqual(audit.meta['pin'], '****')

    def test_staff_from_other_restaurant_cannot_use_tablet(self) -> None:
        with self.app.state.session_factory() as db:
            with self.assertRaises(InvalidPin):
                self._authenticate(db, '3333')

    def test_wrong_pin_is_audited_with_masked_identifier(self) -> None:
        with self.app.state.session_factory() as db:
            with self.assertRaises(InvalidPin):
                self._authenticate(db, '9999')
            db.commit()

            event = db.execute(select(AuthEvent)).scalar_one()
            self.assertFalse(event.success)
            self.assertEqual(event.attempted_identifier, '****')
            self.assertEqual(event.failure_reason, 'INVALID_PIN')
            self.assertNotIn('9999', repr(event.__dict__))

    def test_fingerprint_mismatch_is_rejected_even_with_correct_pin(self) -> None:
        with self.app.state.session_factory() as db:
            with self.assertRaises(InvalidLocationSession):
                self._authenticate(db, '1111', fingerprint='another-tablet')
            self.assertEqual(db.execute(select(UserSession)).scalars().all(), [])

    def test_expired_location_session_is_rejected(self) -> None:
        later = datetime.now(tz=timezone.utc) + timedelta(minutes=self.settings.location_session_ttl_minutes + 1)
        with self.app.state.session_factory() as db:
            with self.assertRaises(InvalidLocationSession):
                self._authenticate(db, '1111', now=later)

    def test_deactivated_location_session_is_rejected(self) -> None:
        with self.app.state.session_factory() as db:
            db.get(LocationSession, self.location_session_id).is_active = False
            db.commit()
            with self.assertRaises(InvalidLocationSession):
                self._authenticate(db, '1111')

    def test_inactive_staff_cannot_log_in(self) -> None:
        with self.app.state.session_factory() as db:
            db.get(User, self.data.staff_ids[0]).is_active = False
            db.commit()
            with self.assertRaises(InvalidPin):
                self._authenticate(db, '1111')
