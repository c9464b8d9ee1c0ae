class OrderFlowError(Exception):
    """Base for every failure the core reports back to a caller.

    `code` is the stable tag the HTTP layer puts in the response envelope,
    `message` names the precondition that was violated.
    """
    code = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(OrderFlowError):
    code = "VALIDATION_FAILED"


class NotFound(OrderFlowError):
    code = "NOT_FOUND"


class Forbidden(OrderFlowError):
    code = "FORBIDDEN"


class InvalidTransition(OrderFlowError):
    code = "INVALID_TRANSITION"

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid status transition. Current status: {_name(current)}, "
            f"cannot transition to: {_name(requested)}"
        )


class ClaimError(OrderFlowError):
    """Raised by the arbiter when a partner did not win the order."""


class AlreadyAssigned(ClaimError):
    code = "ALREADY_ASSIGNED"


class NotReady(ClaimError):
    code = "NOT_READY"


class WalletOperationFailed(OrderFlowError):
    code = "WALLET_OPERATION_FAILED"


def _name(status) -> str:
    return getattr(status, "value", status)
