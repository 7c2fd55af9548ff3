"""Error taxonomy for the connector.

Validation errors are raised before any I/O. Not-found conditions are normal
outcomes (no pool, no route, unknown or expired quote). Provider errors are
transient infrastructure failures.
"""


class DedustError(Exception):
    """Base class for all connector errors."""

    code = "DEDUST_ERROR"


class ValidationError(DedustError):
    """Request failed validation before any provider call."""

    code = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidSlippage(ValidationError):
    code = "INVALID_SLIPPAGE"


class InvalidAsset(ValidationError):
    code = "INVALID_TOKEN"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"


class NotFoundError(DedustError):
    """Expected absence of a pool, route, quote or position."""

    code = "NOT_FOUND"


class PoolNotFound(NotFoundError):
    code = "POOL_NOT_FOUND"


class NoRouteFound(NotFoundError):
    code = "NO_ROUTE_FOUND"


class QuoteNotFound(NotFoundError):
    code = "QUOTE_NOT_FOUND"


class QuoteExpired(NotFoundError):
    code = "QUOTE_EXPIRED"


class PositionNotFound(NotFoundError):
    code = "POSITION_NOT_FOUND"


class InsufficientLiquidity(DedustError):
    code = "INSUFFICIENT_LIQUIDITY"


class SlippageExceeded(DedustError):
    """Expected amounts fall below a caller-specified floor."""

    code = "SLIPPAGE_EXCEEDED"


class ProviderError(DedustError):
    """Pool state or chain read failed for infrastructure reasons."""

    code = "NETWORK_ERROR"


class RoutingUnavailable(DedustError):
    """Every route candidate failed because of provider errors."""

    code = "ROUTING_UNAVAILABLE"


class TonCenterError(ProviderError):
    """JSON-RPC error returned by a toncenter endpoint."""

    def __init__(self, code: int, message: str, data: dict | None = None):
        self.rpc_code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")
