import json
import os
import unittest
from unittest.mock import patch

import httpx

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.core.config import settings
from app.services import whatsapp_client
from app.services.whatsapp_client import WhatsAppDeliveryError, send_text_message, whatsapp_provider_health


class WhatsAppClientTests(unittest.TestCase):
    def setUp(self):
        self._settings_backup = {
            "WHATSAPP_PROVIDER": settings.WHATSAPP_PROVIDER,
            "WHATSAPP_TOKEN": settings.WHATSAPP_TOKEN,
            "WHATSAPP_PHONE_NUMBER_ID": settings.WHATSAPP_PHONE_NUMBER_ID,
        }

    def tearDown(self):
        for key, value in self._settings_backup.items():
            setattr(settings, key, value)

    def _use_transport(self, handler):
        real_client = httpx.Client

        def factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)

        return patch.object(whatsapp_client.httpx, "Client", side_effect=factory)

    def _use_cloud(self):
        settings.WHATSAPP_PROVIDER = "cloud"
        settings.WHATSAPP_TOKEN = "test-token"
        settings.WHATSAPP_PHONE_NUMBER_ID = "10101"

    def test_dummy_provider_mocks_delivery(self):
        settings.WHATSAPP_PROVIDER = "dummy"
        payload = send_text_message("911234567890", "hello")
        self.assertEqual(payload["provider"], "mock_whatsapp")
        self.assertTrue(payload["mocked"])

    def test_dummy_provider_does_not_log_message_body(self):
        settings.WHATSAPP_PROVIDER = "dummy"
        with self.assertLogs("app.whatsapp", level="INFO") as logs:
            send_text_message("911234567890", "code 482913")
        self.assertNotIn("482913", "\n".join(logs.output))

    def test_unknown_provider_raises(self):
        settings.WHATSAPP_PROVIDER = "carrier-pigeon"
        with self.assertRaises(WhatsAppDeliveryError):
            send_text_message("911234567890", "hello")

    def test_empty_recipient_or_text_raises(self):
        with self.assertRaises(WhatsAppDeliveryError):
            send_text_message("", "hello")
        with self.assertRaises(WhatsAppDeliveryError):
            send_text_message("911234567890", "   ")

    def test_cloud_provider_posts_text_message(self):
        self._use_cloud()
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

        with self._use_transport(handler):
            payload = send_text_message("911234567890", "pay rent")

        self.assertTrue(seen["url"].endswith("/v21.0/10101/messages"))
        self.assertEqual(seen["auth"], "Bearer test-token")
        self.assertEqual(seen["body"]["to"], "911234567890")
        self.assertEqual(seen["body"]["text"], {"body": "pay rent"})
        self.assertEqual(payload["message_id"], "wamid.ABC")
        self.assertTrue(payload["sent"])

    def test_cloud_provider_error_status_raises(self):
        self._use_cloud()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Invalid OAuth access token"}})

        with self._use_transport(handler):
            with self.assertRaises(WhatsAppDeliveryError) as ctx:
                send_text_message("911234567890", "pay rent")
        self.assertIn("Invalid OAuth access token", str(ctx.exception))

    def test_cloud_provider_html_gateway_error_raises_delivery_error(self):
        self._use_cloud()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                502,
                text="<html><body><h1>502 Bad Gateway</h1></body></html>",
                headers={"content-type": "text/html"},
            )

        with self._use_transport(handler):
            with self.assertRaises(WhatsAppDeliveryError) as ctx:
                send_text_message("911234567890", "pay rent")
        self.assertIn("status=502", str(ctx.exception))

    def test_cloud_provider_network_error_raises(self):
        self._use_cloud()

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with self._use_transport(handler):
            with self.assertRaises(WhatsAppDeliveryError):
                send_text_message("911234567890", "pay rent")

    def test_cloud_provider_without_credentials_is_degraded(self):
        settings.WHATSAPP_PROVIDER = "cloud"
        settings.WHATSAPP_TOKEN = ""
        settings.WHATSAPP_PHONE_NUMBER_ID = ""
        health = whatsapp_provider_health()
        self.assertEqual(health["status"], "degraded")
        self.assertFalse(health["can_send"])
        with self.assertRaises(WhatsAppDeliveryError):
            send_text_message("911234567890", "pay rent")
