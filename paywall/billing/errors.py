class BillingError(Exception):
    pass


class AuthenticationError(BillingError):
    pass


class ConfigurationError(BillingError):
    pass


class ValidationError(BillingError):
    pass


class ProviderError(BillingError):
    pass


class CheckoutInFlightError(BillingError):
    pass


class ReconciliationAnomaly(BillingError):
    def __init__(self, reason: str, detail: dict[str, object] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.detail = detail or {}
