"""Domain-specific exceptions

Each exception carries the HTTP status the API layer answers with.
"""


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(DomainException):
    """Missing or malformed request data"""

    status_code = 400


class NotFound(DomainException):
    """Debt, transaction, account or user does not exist"""

    status_code = 500


class Unauthorized(DomainException):
    """Access token missing or rejected by the auth service"""

    status_code = 401


class Forbidden(DomainException):
    """Caller is authenticated but not allowed to act on the resource"""

    status_code = 403


class InvalidState(DomainException):
    """Transition not allowed from the entity's current state"""

    status_code = 409


class SpendingAccountLocked(DomainException):
    """One side of a settlement has no active spending account"""

    status_code = 400


class InsufficientBalance(DomainException):
    """Payer cannot cover the debt when the OTP is requested"""

    status_code = 500


class SettlementRejected(DomainException):
    """Payment verification refused; nothing was changed"""

    status_code = 500


class OtpInvalidOrExpired(SettlementRejected):
    """Submitted OTP does not match or its window has passed"""

    pass


class TransactionAlreadySettled(SettlementRejected):
    """Linked payment transaction has already succeeded"""

    pass


class InsufficientBalanceAtSettlement(DomainException):
    """Payer balance dropped below the debt amount before verification"""

    status_code = 500


class NotificationDeliveryError(DomainException):
    """Mail relay rejected or never acknowledged a message"""

    pass
