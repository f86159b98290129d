import logging
from typing import Any, Dict

import httpx

from core.config import settings
from plugins.rent_ledger.services.providers.base import BaseProvider
from utils.exceptions import DeliveryError

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160


def normalize_phone(phone: str) -> str:
    """0794501005 -> 254794501005"""
    phone = "".join(phone.split()).lstrip("+")
    if phone.startswith("0"):
        return "254" + phone[1:]
    if not phone.startswith("254"):
        return "254" + phone
    return phone


class UmsSmsProvider(BaseProvider):
    """UMS bulk SMS gateway implementation."""

    def __init__(self, api_key: str | None = None, app_id: str | None = None,
                 sender_id: str | None = None, url: str | None = None):
        self.api_key = api_key or settings.SMS_API_KEY
        self.app_id = app_id or settings.SMS_APP_ID
        self.sender_id = sender_id or settings.SMS_SENDER_ID
        self.url = url or settings.SMS_API_URL

    def sanitize_payload(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("to") or not data.get("message"):
            raise DeliveryError("Phone number and message are required")
        return {
            "api_key": self.api_key,
            "app_id": self.app_id,
            "sender_id": self.sender_id,
            "message": data["message"][:SMS_MAX_LENGTH],
            "phone": normalize_phone(data["to"]),
        }

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key or not self.app_id:
            raise DeliveryError("SMS API key or App ID is missing")
        body = self.sanitize_payload(payload)
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.url,
                    headers={"x-api-key": self.api_key},
                    json=body,
                    timeout=10
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            raise DeliveryError(f"SMS request to {body['phone']} failed: {e}") from e
        except ValueError as e:
            raise DeliveryError(f"SMS API returned non-JSON response for {body['phone']}") from e

        if data.get("status") != "complete":
            raise DeliveryError(f"SMS to {body['phone']} rejected: {data.get('message')}")
        logger.info(f"SMS sent to {body['phone']}")
        return data
