"""
Escrow error taxonomy

Every error is locally terminal: nothing inside the core retries. The API
layer maps each class to an HTTP status via its ``code``.
"""


class EscrowError(Exception):
    """Base class for escrow domain errors"""
    code = "ESCROW_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code


class ValidationError(EscrowError):
    """Malformed input, rejected before any state mutation"""
    code = "VALIDATION_ERROR"


class NotFoundError(EscrowError):
    """Referenced transaction, dispute or wallet does not exist"""
    code = "NOT_FOUND"


class InvalidTransitionError(EscrowError):
    """Action is not legal from the current state"""
    code = "INVALID_TRANSITION"


class UnauthorizedActorError(InvalidTransitionError):
    """Actor may not perform this action on this transaction"""
    code = "FORBIDDEN"


class InsufficientFundsError(EscrowError):
    """Wallet balance or net amount would not stay positive"""
    code = "INSUFFICIENT_FUNDS"


class AmountTooLowError(InsufficientFundsError):
    """Fees consume the whole amount"""
    code = "AMOUNT_TOO_LOW"


class ConcurrencyConflictError(EscrowError):
    """Row changed between read and conditional write; retry with fresh state"""
    code = "CONCURRENCY_CONFLICT"


class ExternalDependencyError(EscrowError):
    """Payment gateway or other collaborator unreachable; safe to retry"""
    code = "EXTERNAL_DEPENDENCY_FAILURE"
