"""Error types raised while dispatching and calling upstream."""


class GatewayError(Exception):
    """Base class for every error the gateway reports."""


class ValidationError(GatewayError):
    """The inbound request is missing a required field."""


class TransportError(GatewayError):
    """The upstream could not be reached or did not answer in time."""


class UpstreamError(GatewayError):
    """The upstream answered with a non-200 status."""

    def __init__(self, status_code: int, reason: str, body: str):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"Upstream request failed: {status_code} {reason}\n{body}")


class ParseError(GatewayError):
    """A JSON document did not have the expected shape."""


class EmptyContentError(GatewayError):
    """The upstream reply carried no choices."""
