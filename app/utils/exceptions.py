class LedgerError(Exception):
    pass
class ValidationError(LedgerError):
    pass
class NotFoundError(LedgerError):
    pass
class ConcurrencyConflict(LedgerError):
    """Raised when a tenant ledger write lost a version race. Nothing was written."""

    def __init__(self, tenant_id, expected_version):
        self.tenant_id = str(tenant_id)
        self.expected_version = expected_version
        super().__init__(
            f"Tenant {self.tenant_id} changed since version {expected_version}; re-read and retry"
        )
class UpstreamGatewayError(LedgerError):
    pass
class DeliveryError(LedgerError):
    pass
