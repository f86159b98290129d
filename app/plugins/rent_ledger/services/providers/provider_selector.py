from plugins.rent_ledger.services.providers.base import BaseProvider
from plugins.rent_ledger.services.providers.smtp_email import SmtpEmailProvider
from plugins.rent_ledger.services.providers.ums_sms import UmsSmsProvider

PROVIDERS: dict[str, type[BaseProvider]] = {
    "ums": UmsSmsProvider,
    "smtp": SmtpEmailProvider,
}

def get_provider(name: str, api_key: str | None = None) -> BaseProvider:
    """Factory function for selecting a notification provider."""
    provider_cls = PROVIDERS.get(name.lower())
    if not provider_cls:
        raise ValueError(f"Unsupported provider: {name}")
    return provider_cls(api_key)
