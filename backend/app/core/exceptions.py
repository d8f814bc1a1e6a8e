class BillingError(Exception):
    """Base exception for the billing service.

    Each subclass carries the HTTP status and machine-readable code the global
    exception handler renders.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(BillingError):
    """Raised when the identity token is missing or invalid."""

    status_code = 401
    code = "UNAUTHORIZED"


class ValidationFailure(BillingError):
    """Raised when request input fails validation."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidPlanError(ValidationFailure):
    """Raised when a plan tag is not in the price table."""

    code = "INVALID_PLAN"

    def __init__(self, plan: str | None):
        self.plan = plan
        super().__init__(f"Invalid plan: {plan!r}. Must be one of 'standard' or 'premium'")


class MissingFieldError(ValidationFailure):
    """Raised when a required request field is absent."""

    code = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class MissingMetadataError(ValidationFailure):
    """Raised when a webhook object lacks its correlation metadata."""

    code = "MISSING_METADATA"

    def __init__(self, object_id: str | None, missing: list[str]):
        self.object_id = object_id
        self.missing = missing
        super().__init__(f"Object {object_id} is missing metadata: {', '.join(missing)}")


class PaymentNotConfirmedError(ValidationFailure):
    """Raised when a checkout session has not been paid."""

    code = "PAYMENT_NOT_CONFIRMED"

    def __init__(self, session_id: str, payment_status: str | None):
        self.session_id = session_id
        self.payment_status = payment_status
        super().__init__(f"Payment not confirmed (status: {payment_status})")


class SignatureError(BillingError):
    """Raised when a webhook request fails signature verification."""

    status_code = 400
    code = "INVALID_SIGNATURE"


class NotFoundError(BillingError):
    """Raised when no subscription matches the lookup."""

    status_code = 404
    code = "SUBSCRIPTION_NOT_FOUND"


class UpstreamError(BillingError):
    """Raised when the Stripe API call fails."""

    status_code = 500
    code = "STRIPE_ERROR"


class StorageError(BillingError):
    """Raised when a backend store read or write fails."""

    status_code = 500
    code = "STORAGE_ERROR"


class ConfigurationError(BillingError):
    """Raised when a required credential or price id is not configured."""

    status_code = 503
    code = "CONFIGURATION_ERROR"
