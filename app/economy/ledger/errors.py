from app.economy.errors import InvariantViolationError, StateError, ValidationError


class LedgerValidationError(ValidationError):
    code = "E_LEDGER_INVALID"


class LedgerUserNotFoundError(StateError):
    code = "E_USER_NOT_FOUND"
    reason = "User not found."


class InsufficientBalanceError(StateError):
    code = "E_INSUFFICIENT_BALANCE"
    reason = "Not enough credits."


class PaymentCaptureValidationError(ValidationError):
    code = "E_PAYMENT_CAPTURE_INVALID"


class LedgerIdempotencyConflictError(InvariantViolationError):
    code = "E_LEDGER_IDEMPOTENCY_CONFLICT"


class NegativeBalanceInvariantError(InvariantViolationError):
    code = "E_NEGATIVE_BALANCE"
