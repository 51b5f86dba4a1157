"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional


class DebtStatus(str, Enum):
    NOT_PAID = "NOT_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class FeePayer(str, Enum):
    """Which side of a transfer bears the transaction fee"""

    SRC = "SRC"  # payer
    DES = "DES"  # payee


class TransactionType(str, Enum):
    DEBT_SETTLEMENT = "DEBT_SETTLEMENT"
    TRANSFER = "TRANSFER"


class AccountType(int, Enum):
    ACTIVE_SPENDING = 1
    SAVING = 2
    LOCKED = 3


class Role(str, Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True)
class WorkflowConfig:
    """Explicit settings handed to the lifecycle manager and settlement coordinator"""

    bank_name: str = "Solar Banking"
    otp_ttl: timedelta = timedelta(minutes=5)
    otp_length: int = 6
    fee_payer: FeePayer = FeePayer.DES

    @classmethod
    def from_settings(cls, settings) -> "WorkflowConfig":
        return cls(
            bank_name=settings.bank_name,
            otp_ttl=timedelta(seconds=settings.otp_ttl_seconds),
            otp_length=settings.otp_length,
            fee_payer=FeePayer(settings.settlement_fee_payer),
        )


@dataclass(frozen=True)
class Principal:
    """Caller identity resolved from an access token"""

    user_id: int
    role: str


@dataclass(frozen=True)
class OutboundMessage:
    """Email to deliver once the owning unit of work has committed"""

    address: str
    subject: str
    body: str


@dataclass
class SettlementResult:
    """Outcome of a verified debt payment"""

    debt_id: int
    transaction_id: int
    status: DebtStatus
    amount: int
    notification_id: Optional[int] = None


@dataclass
class SettlementInconsistency:
    """Debt and payment transaction whose final flags disagree"""

    debt_id: int
    transaction_id: int
    debt_status: str
    transaction_succeeded: bool
    reason: str
