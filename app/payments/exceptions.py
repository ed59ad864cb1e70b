class GatewayError(Exception):
    """Raised when the payment provider call fails or returns an unusable response."""


class GatewayConfigError(GatewayError):
    """Raised when provider credentials are not configured."""


class GatewayPayloadError(GatewayError):
    """Raised when a provider payload (response or webhook) is structurally invalid."""
