class EconomyError(Exception):
    code = "E_ECONOMY"
    reason = "The request could not be processed."


class ValidationError(EconomyError):
    code = "E_VALIDATION"
    reason = "The request is malformed."


class StateError(EconomyError):
    code = "E_STATE"
    reason = "The request conflicts with the current state."


class ExternalDependencyError(EconomyError):
    code = "E_DEPENDENCY_UNAVAILABLE"
    reason = "An upstream service is unavailable, please retry."


class InvariantViolationError(EconomyError):
    code = "E_INVARIANT_VIOLATION"
    reason = "The request was rejected."
