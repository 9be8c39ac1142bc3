from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import settings

_LOG = logging.getLogger("app.whatsapp")

MOCK_PROVIDERS = {"", "dummy", "mock", "console"}
CLOUD_PROVIDERS = {"cloud", "meta", "whatsapp_cloud"}


class WhatsAppDeliveryError(Exception):
    pass


def _provider() -> str:
    return str(settings.WHATSAPP_PROVIDER or "dummy").strip().lower()


def _messages_url() -> str:
    base = str(settings.WHATSAPP_API_BASE_URL or "").rstrip("/")
    version = str(settings.WHATSAPP_API_VERSION or "").strip()
    phone_number_id = str(settings.WHATSAPP_PHONE_NUMBER_ID or "").strip()
    return f"{base}/{version}/{phone_number_id}/messages"


def _mock_send(*, phone: str, text: str) -> dict[str, Any]:
    # Message bodies may carry login codes, only the shape is logged.
    _LOG.info("[WHATSAPP MOCK] to=%s chars=%s", phone, len(text))
    return {
        "provider": "mock_whatsapp",
        "status": "accepted",
        "sent": False,
        "mocked": True,
    }


def _cloud_send(*, phone: str, text: str) -> dict[str, Any]:
    token = str(settings.WHATSAPP_TOKEN or "").strip()
    phone_number_id = str(settings.WHATSAPP_PHONE_NUMBER_ID or "").strip()
    if not token or not phone_number_id:
        raise WhatsAppDeliveryError("WHATSAPP_TOKEN and/or WHATSAPP_PHONE_NUMBER_ID are not configured")

    payload = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": phone,
        "type": "text",
        "text": {"body": text},
    }
    try:
        with httpx.Client(timeout=float(settings.WHATSAPP_TIMEOUT_SECONDS)) as client:
            response = client.post(
                _messages_url(),
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
    except httpx.HTTPError as exc:
        raise WhatsAppDeliveryError(f"WhatsApp request failed: {exc}") from exc

    try:
        data = response.json() if response.content else {}
    except ValueError:
        # Gateways in front of the API answer with HTML error pages.
        data = {}
    if response.status_code >= 400:
        error = data.get("error") if isinstance(data, dict) else None
        detail = (error or {}).get("message") if isinstance(error, dict) else None
        raise WhatsAppDeliveryError(f"WhatsApp API error status={response.status_code}: {detail or 'unknown'}")

    messages = data.get("messages") if isinstance(data, dict) else None
    message_id = messages[0].get("id") if messages else None
    return {
        "provider": "whatsapp_cloud",
        "status": "accepted",
        "sent": True,
        "message_id": message_id,
    }


def send_text_message(phone: str, text: str) -> dict[str, Any]:
    """Deliver a plain text message; raises WhatsAppDeliveryError on any failure."""
    recipient = str(phone or "").strip()
    body = str(text or "").strip()
    if not recipient:
        raise WhatsAppDeliveryError("Recipient phone number is empty")
    if not body:
        raise WhatsAppDeliveryError("Message text is empty")

    provider = _provider()
    if provider in MOCK_PROVIDERS:
        return _mock_send(phone=recipient, text=body)
    if provider in CLOUD_PROVIDERS:
        return _cloud_send(phone=recipient, text=body)
    raise WhatsAppDeliveryError(f"Unknown WHATSAPP_PROVIDER: {provider}")


def whatsapp_provider_health() -> dict[str, Any]:
    provider = _provider()
    if provider in MOCK_PROVIDERS:
        return {"provider": "dummy", "status": "ok", "mode": "mock", "can_send": True, "issues": []}
    if provider in CLOUD_PROVIDERS:
        checks = {
            "token_configured": bool(str(settings.WHATSAPP_TOKEN or "").strip()),
            "phone_number_id_configured": bool(str(settings.WHATSAPP_PHONE_NUMBER_ID or "").strip()),
        }
        issues: list[str] = []
        if not checks["token_configured"]:
            issues.append("WHATSAPP_TOKEN is not set")
        if not checks["phone_number_id_configured"]:
            issues.append("WHATSAPP_PHONE_NUMBER_ID is not set")
        can_send = all(checks.values())
        return {
            "provider": "whatsapp_cloud",
            "status": "ok" if can_send else "degraded",
            "mode": "real",
            "can_send": can_send,
            "checks": checks,
            "issues": issues,
        }
    return {
        "provider": provider,
        "status": "error",
        "mode": "unknown",
        "can_send": False,
        "issues": [f"Unknown WHATSAPP_PROVIDER: {provider}"],
    }
