"""SQLAlchemy ORM models for the debt settlement ledger"""

from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, Integer, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from debt_gateway.domain.models import DebtStatus, FeePayer, TransactionType, AccountType, Role

Base = declarative_base()


class UserAccount(Base):
    """Bank customer or staff member"""

    __tablename__ = "user_account"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), nullable=False, unique=True)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    role = Column(String(32), nullable=False, default=Role.CUSTOMER.value)


class BankingAccount(Base):
    """Money-holding account owned by a user"""

    __tablename__ = "banking_account"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_banking_account_balance_non_negative"),)

    account_number = Column(String(32), primary_key=True)
    user_id = Column(Integer, ForeignKey("user_account.id"), nullable=False, index=True)
    balance = Column(BigInteger, nullable=False, default=0)
    account_type = Column(Integer, nullable=False, default=AccountType.ACTIVE_SPENDING.value)
    holder_full_name = Column(Text, nullable=False)
    holder_email = Column(Text, nullable=False)


class PaymentTransaction(Base):
    """One attempted money movement, gated by an OTP"""

    __tablename__ = "payment_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_account_number = Column(String(32), nullable=False)
    destination_account_number = Column(String(32), nullable=False)
    amount = Column(BigInteger, nullable=False)
    otp_code = Column(String(16), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    fee_payer = Column(String(8), nullable=False, default=FeePayer.DES.value)
    succeeded = Column(Boolean, nullable=False, default=False)
    transaction_type = Column(String(32), nullable=False, default=TransactionType.DEBT_SETTLEMENT.value)
    message = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    settled_at = Column(DateTime(timezone=True), nullable=True)


class Debt(Base):
    """Payment reminder from a requester to a debtor account"""

    __tablename__ = "debt"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_debt_amount_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, ForeignKey("user_account.id"), nullable=False, index=True)
    debtor_account_number = Column(String(32), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    message = Column(Text, nullable=False, default="")
    status = Column(String(16), nullable=False, default=DebtStatus.NOT_PAID.value)
    cancel_message = Column(Text, nullable=False, default="")
    linked_transaction_id = Column(Integer, ForeignKey("payment_transaction.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Notification(Base):
    """In-app message about a debt or transaction event"""

    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    transaction_id = Column(Integer, nullable=True)
    debt_id = Column(Integer, nullable=True)
    message = Column(Text, nullable=False)
    is_seen = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
