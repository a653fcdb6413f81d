"""
Exception hierarchy shared by the service layer and the API.

Services raise these; ``backend.main`` maps them onto HTTP status codes.
"""


class CongregationHubError(Exception):
    """Base exception for all application errors"""

    pass


class ConfigurationError(CongregationHubError):
    """A required credential or setting is missing"""

    pass


class ValidationError(CongregationHubError):
    """Input rejected before any external call was made"""

    pass


class NotFoundError(CongregationHubError):
    """A referenced record does not exist"""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record '{record_id}' not found")


class ExternalServiceError(CongregationHubError):
    """A managed service (store, Gmail, Stripe, Places) failed"""

    pass


class BroadcastValidationError(ValidationError):
    """A broadcast request cannot start"""

    pass


class PaymentError(ExternalServiceError):
    """The payment gateway rejected or failed a request"""

    pass


class DeliveryError(ExternalServiceError):
    """A single broadcast recipient could not be reached"""

    pass
