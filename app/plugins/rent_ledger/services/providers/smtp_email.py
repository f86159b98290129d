import asyncio
import logging
import smtplib
import ssl
import uuid
from email.mime.text import MIMEText
from typing import Any, Dict

import certifi

from core.config import settings
from plugins.rent_ledger.services.providers.base import BaseProvider
from utils.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class SmtpEmailProvider(BaseProvider):
    """Plain text email over SMTP."""

    def __init__(self, api_key: str | None = None):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.smtp_use_tls = settings.SMTP_USE_TLS
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME

    def build_message(self, payload: Dict[str, Any]) -> MIMEText:
        if not payload.get("to"):
            raise DeliveryError("Email address is required")
        to_name = payload.get("name")
        msg = MIMEText(payload["message"], "plain", "utf-8")
        msg["Subject"] = payload.get("subject") or "Rent reminder"
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = f"{to_name} <{payload['to']}>" if to_name else payload["to"]
        msg["Message-ID"] = f"<{uuid.uuid4()}@{self.from_email.split('@')[1]}>"
        return msg

    def _send_via_smtp(self, msg: MIMEText) -> None:
        context = ssl.create_default_context(cafile=certifi.where())
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
            if self.smtp_use_tls:
                server.starttls(context=context)
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        msg = self.build_message(payload)
        try:
            await asyncio.to_thread(self._send_via_smtp, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Email to {payload['to']} failed: {e}") from e
        logger.info(f"Email sent to {payload['to']}")
        return {"status": "sent", "message_id": msg["Message-ID"]}
