from datetime import timedelta
from unittest.mock import patch

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql

from tests.base import ONBOARDED_PHONE, LedgerDbTestCase, utc

from app.core.security import hash_code
from app.models.login_token import LoginToken
from app.models.common import as_utc
from app.services import otp_service
from app.services.otp_service import (
    InvalidOrExpired,
    NotOnboarded,
    cleanup_expired_tokens,
    generate_code,
    request_code,
    verify_code,
)
from app.services.whatsapp_client import WhatsAppDeliveryError

T0 = utc(2026, 10, 17, 9, 0, 0)


class OtpServiceTests(LedgerDbTestCase):
    def setUp(self):
        super().setUp()
        self.user_id = self._add_user()
        self.sent = []
        self._send_patch = patch(
            "app.services.otp_service.send_text_message",
            side_effect=lambda phone, text: self.sent.append((phone, text)) or {"provider": "mock_whatsapp"},
        )
        self._send_patch.start()

    def tearDown(self):
        self._send_patch.stop()

    def _live_tokens(self, at):
        with self.SessionLocal() as db:
            return db.execute(
                select(LoginToken).where(
                    LoginToken.phone_number == ONBOARDED_PHONE,
                    LoginToken.used_at.is_(None),
                    LoginToken.expires_at > at,
                )
            ).scalars().all()

    def test_generate_code_is_six_digits_in_range(self):
        for _ in range(200):
            code = generate_code()
            self.assertEqual(len(code), 6)
            self.assertTrue(code.isdigit())
            self.assertTrue(100000 <= int(code) <= 999999)

    def test_request_stores_hash_and_sends_plaintext_once(self):
        with patch("app.services.otp_service.generate_code", return_value="482913"):
            with self.SessionLocal() as db:
                result = request_code(db, "+91 12345 67890", now=T0)

        self.assertEqual(result["status"], "sent")
        self.assertNotIn("482913", str(result))
        self.assertEqual(len(self.sent), 1)
        self.assertEqual(self.sent[0][0], ONBOARDED_PHONE)
        self.assertIn("482913", self.sent[0][1])

        with self.SessionLocal() as db:
            token = db.execute(select(LoginToken)).scalar_one()
        self.assertEqual(token.code_hash, hash_code("482913"))
        self.assertNotEqual(token.code_hash, "482913")
        self.assertEqual(as_utc(token.expires_at), T0 + timedelta(minutes=5))
        self.assertIsNone(token.used_at)

    def test_unknown_and_not_onboarded_numbers_are_rejected(self):
        self._add_user("919999900000", onboarded=False)
        with self.SessionLocal() as db:
            with self.assertRaises(NotOnboarded):
                request_code(db, "919999900000", now=T0)
            with self.assertRaises(NotOnboarded):
                request_code(db, "918888800000", now=T0)
            with self.assertRaises(NotOnboarded):
                request_code(db, "", now=T0)
        self.assertEqual(self.sent, [])

    def test_only_latest_code_is_live(self):
        with patch("app.services.otp_service.generate_code", side_effect=["111111", "222222", "333333"]):
            with self.SessionLocal() as db:
                request_code(db, ONBOARDED_PHONE, now=T0)
                request_code(db, ONBOARDED_PHONE, now=T0 + timedelta(seconds=10))
                request_code(db, ONBOARDED_PHONE, now=T0 + timedelta(seconds=20))

        live = self._live_tokens(T0 + timedelta(seconds=21))
        self.assertEqual(len(live), 1)
        self.assertEqual(live[0].code_hash, hash_code("333333"))

    def test_resend_scenario_old_code_fails_new_code_single_use(self):
        with patch("app.services.otp_service.generate_code", side_effect=["111111", "222222"]):
            with self.SessionLocal() as db:
                request_code(db, "+911234567890", now=T0)
                request_code(db, "+911234567890", now=T0 + timedelta(seconds=30))

        check_at = T0 + timedelta(seconds=40)
        with self.SessionLocal() as db:
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, "+911234567890", "111111", now=check_at)

            identity = verify_code(db, "+911234567890", "222222", now=check_at)
            self.assertEqual(identity.user_id, self.user_id)
            self.assertEqual(identity.phone_number, ONBOARDED_PHONE)
            self.assertEqual(identity.name, "Rohan Mehta")

            with self.assertRaises(InvalidOrExpired):
                verify_code(db, "+911234567890", "222222", now=check_at + timedelta(seconds=1))

    def test_expired_code_never_verifies(self):
        with patch("app.services.otp_service.generate_code", return_value="555555"):
            with self.SessionLocal() as db:
                request_code(db, ONBOARDED_PHONE, now=T0)

        with self.SessionLocal() as db:
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, ONBOARDED_PHONE, "555555", now=T0 + timedelta(minutes=5))
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, ONBOARDED_PHONE, "555555", now=T0 + timedelta(minutes=6))
            identity = verify_code(db, ONBOARDED_PHONE, "555555", now=T0 + timedelta(minutes=4, seconds=59))
        self.assertEqual(identity.user_id, self.user_id)

    def test_wrong_code_and_wrong_phone_fail(self):
        with patch("app.services.otp_service.generate_code", return_value="777777"):
            with self.SessionLocal() as db:
                request_code(db, ONBOARDED_PHONE, now=T0)

        with self.SessionLocal() as db:
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, ONBOARDED_PHONE, "777778", now=T0)
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, "919000000000", "777777", now=T0)
            with self.assertRaises(InvalidOrExpired):
                verify_code(db, ONBOARDED_PHONE, "", now=T0)

    def test_concurrent_consume_lets_only_one_verification_win(self):
        with patch("app.services.otp_service.generate_code", return_value="424242"):
            with self.SessionLocal() as db:
                request_code(db, ONBOARDED_PHONE, now=T0)

        with self.SessionLocal() as db:
            original_execute = db.execute
            raced = []

            def racing_execute(statement, *args, **kwargs):
                result = original_execute(statement, *args, **kwargs)
                if not raced:
                    # Another verification consumes the token right after our lookup.
                    raced.append(True)
                    original_execute(
                        update(LoginToken)
                        .values(used_at=T0)
                        .execution_options(synchronize_session=False)
                    )
                return result

            with patch.object(db, "execute", side_effect=racing_execute):
                with self.assertRaises(InvalidOrExpired):
                    verify_code(db, ONBOARDED_PHONE, "424242", now=T0 + timedelta(seconds=5))

    def test_transport_failure_keeps_issued_token(self):
        with (
            patch("app.services.otp_service.generate_code", return_value="909090"),
            patch.object(otp_service, "send_text_message", side_effect=WhatsAppDeliveryError("down")),
        ):
            with self.SessionLocal() as db:
                with self.assertRaises(WhatsAppDeliveryError):
                    request_code(db, ONBOARDED_PHONE, now=T0)

        live = self._live_tokens(T0)
        self.assertEqual(len(live), 1)
        self.assertEqual(live[0].code_hash, hash_code("909090"))

    def test_cleanup_deletes_expired_and_used_tokens(self):
        with self.SessionLocal() as db:
            db.add_all(
                [
                    LoginToken(phone_number=ONBOARDED_PHONE, code_hash="a" * 64, expires_at=T0 - timedelta(minutes=1)),
                    LoginToken(
                        phone_number=ONBOARDED_PHONE,
                        code_hash="b" * 64,
                        expires_at=T0 + timedelta(minutes=3),
                        used_at=T0 - timedelta(seconds=5),
                    ),
                    LoginToken(phone_number=ONBOARDED_PHONE, code_hash="c" * 64, expires_at=T0 + timedelta(minutes=3)),
                ]
            )
            db.commit()

        with self.SessionLocal() as db:
            result = cleanup_expired_tokens(db, now=T0)
        self.assertEqual(result, {"checked": 3, "deleted": 2})

        with self.SessionLocal() as db:
            remaining = db.execute(select(LoginToken)).scalars().all()
        self.assertEqual([row.code_hash for row in remaining], ["c" * 64])

    def test_request_locks_user_row_before_invalidating(self):
        with self.SessionLocal() as db:
            original_execute = db.execute
            statements = []

            def recording_execute(statement, *args, **kwargs):
                statements.append(str(statement.compile(dialect=postgresql.dialect())))
                return original_execute(statement, *args, **kwargs)

            with patch.object(db, "execute", side_effect=recording_execute):
                request_code(db, ONBOARDED_PHONE, now=T0)

        self.assertIn("FROM users", statements[0])
        self.assertIn("FOR UPDATE", statements[0])
        self.assertTrue(statements[1].startswith("UPDATE login_tokens"))
