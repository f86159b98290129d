from abc import ABC, abstractmethod
from typing import Any, Dict


class BaseProvider(ABC):
    """Abstract base class for notification providers."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key

    @abstractmethod
    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deliver one message.

        Payload keys: ``tenant_id``, ``to`` (phone, email or tenant id) and
        ``message``; email payloads also carry ``subject`` and ``name``.
        Raises DeliveryError when the provider rejects or cannot be reached.
        """
        pass

    def sanitize_payload(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Optional helper to clean or standardize payload data."""
        return data
