"""Domain exceptions for the Barter Exchange.

These exceptions are framework-agnostic and represent business rule violations.
Each one carries the numeric code the RPC dispatcher reports to the caller
in its ``{code, message}`` error object.
"""


class ExchangeError(Exception):
    """Base exception for all domain errors."""

    rpc_code: int = 5000

    def __init__(self, message: str, code: str = "EXCHANGE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Request Errors ---


class InvalidParamsError(ExchangeError):
    """Raised when request parameters are malformed or out of range."""

    rpc_code = -32602

    def __init__(self, message: str) -> None:
        super().__init__(message=f"Invalid params: {message}", code="INVALID_PARAMS")


class MethodNotFoundError(ExchangeError):
    rpc_code = -32601

    def __init__(self, method: str) -> None:
        super().__init__(message=f"Method not found: {method}", code="METHOD_NOT_FOUND")
        self.method = method


class BadRequestError(ExchangeError):
    """Raised when a well-formed request is logically invalid."""

    rpc_code = 4000

    def __init__(self, message: str, code: str = "BAD_REQUEST") -> None:
        super().__init__(message=message, code=code)


class SelfAcceptError(BadRequestError):
    """Raised when a proposer tries to accept their own trade."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(
            message=f"Cannot accept your own trade: {trade_id}",
            code="SELF_ACCEPT",
        )
        self.trade_id = trade_id


# --- Access Errors ---


class UnauthorizedError(ExchangeError):
    """Raised when a method needs a principal and none was supplied."""

    rpc_code = 4001

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message=message, code="UNAUTHORIZED")


class ForbiddenError(ExchangeError):
    """Raised when the principal lacks the rights for an operation."""

    rpc_code = 4003

    def __init__(self, message: str = "Admin access required") -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- Lookup Errors ---


class NotFoundError(ExchangeError):
    """Raised when an entity is absent or an access-scoped query matched nothing.

    For trades the two cases are deliberately indistinguishable so that
    non-participants cannot probe for trade existence.
    """

    rpc_code = 4004

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code)


class TradeNotFoundError(NotFoundError):
    def __init__(self, trade_id: str) -> None:
        super().__init__(message=f"Trade not found: {trade_id}", code="TRADE_NOT_FOUND")
        self.trade_id = trade_id


class TransactionNotFoundError(NotFoundError):
    def __init__(self, reference: str, detail: str = "") -> None:
        message = f"Transaction not found: {reference}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message=message, code="TRANSACTION_NOT_FOUND")
        self.reference = reference


# --- State Errors ---


class InvalidStateError(ExchangeError):
    """Raised when an operation is not legal for the entity's current status."""

    rpc_code = 4009

    def __init__(self, message: str, code: str = "INVALID_STATE") -> None:
        super().__init__(message=message, code=code)


class InvalidStateTransitionError(InvalidStateError):
    """Raised when a state machine refuses an event from the current state.

    Example: completed -> committed (completed is final).
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class DuplicateTransactionError(InvalidStateError):
    """Raised when an active ledger entry already exists for (trade, user, tx_type)."""

    def __init__(self, tx_type: str, status: str | None = None) -> None:
        if status:
            message = f"A {tx_type} transaction already exists with status '{status}'"
        else:
            message = f"A {tx_type} transaction is already in progress"
        super().__init__(message=message, code="DUPLICATE_TRANSACTION")
        self.tx_type = tx_type
        self.status = status


# --- Infrastructure Errors ---


class ConfigurationError(ExchangeError):
    """Raised when exchange configuration required by an operation is missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CONFIGURATION_ERROR")


class ChainObserverError(ExchangeError):
    """Raised when the chain node cannot answer a query."""

    def __init__(self, message: str, tx_id: str | None = None) -> None:
        super().__init__(message=message, code="CHAIN_OBSERVER_ERROR")
        self.tx_id = tx_id
