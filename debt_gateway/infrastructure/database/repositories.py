"""Data access layer for the debt settlement ledger"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import update, or_, and_
from sqlalchemy.orm import Session
from debt_gateway.infrastructure.database.models import (
    UserAccount,
    BankingAccount,
    PaymentTransaction,
    Debt,
    Notification,
)
from debt_gateway.domain.models import DebtStatus, TransactionType, AccountType


class UserRepository:
    """Repository for user accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[UserAccount]:
        return self.db.get(UserAccount, user_id)


class BankingAccountRepository:
    """Repository for banking accounts and balance movements"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_number(self, account_number: str) -> Optional[BankingAccount]:
        return self.db.get(BankingAccount, account_number)

    def list_by_user(self, user_id: int) -> List[BankingAccount]:
        return (
            self.db.query(BankingAccount)
            .filter(BankingAccount.user_id == user_id)
            .order_by(BankingAccount.account_number)
            .all()
        )

    def get_active_spending(self, user_id: int) -> Optional[BankingAccount]:
        """Account a user sends and receives settlements with"""
        return (
            self.db.query(BankingAccount)
            .filter(
                BankingAccount.user_id == user_id,
                BankingAccount.account_type == AccountType.ACTIVE_SPENDING.value,
            )
            .order_by(BankingAccount.account_number)
            .first()
        )

    def credit(self, account_number: str, amount: int) -> bool:
        """Atomically add amount to the balance; False if the account is missing"""
        result = self.db.execute(
            update(BankingAccount)
            .where(BankingAccount.account_number == account_number)
            .values(balance=BankingAccount.balance + amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def debit(self, account_number: str, amount: int) -> bool:
        """
        Atomically subtract amount from the balance.

        The balance predicate lives in the UPDATE itself, so a concurrent
        debit can never observe a stale balance and drive it negative.

        Returns:
            False when the account is missing or cannot cover amount
        """
        result = self.db.execute(
            update(BankingAccount)
            .where(
                BankingAccount.account_number == account_number,
                BankingAccount.balance >= amount,
            )
            .values(balance=BankingAccount.balance - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class DebtRepository:
    """Repository for debts"""

    def __init__(self, db: Session):
        self.db = db

    def create_debt(
        self,
        requester_id: int,
        debtor_account_number: str,
        amount: int,
        message: str,
    ) -> Debt:
        db_debt = Debt(
            requester_id=requester_id,
            debtor_account_number=debtor_account_number,
            amount=amount,
            message=message,
            status=DebtStatus.NOT_PAID.value,
            cancel_message="",
        )
        self.db.add(db_debt)
        self.db.flush()  # Get ID without committing
        return db_debt

    def get_by_id(self, debt_id: int, for_update: bool = False) -> Optional[Debt]:
        query = self.db.query(Debt).filter(Debt.id == debt_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_by_requester(self, requester_id: int) -> List[Debt]:
        return (
            self.db.query(Debt)
            .filter(Debt.requester_id == requester_id)
            .order_by(Debt.id)
            .all()
        )

    def list_by_debtor_accounts(self, account_numbers: List[str]) -> List[Debt]:
        if not account_numbers:
            return []
        return (
            self.db.query(Debt)
            .filter(Debt.debtor_account_number.in_(account_numbers))
            .order_by(Debt.id)
            .all()
        )

    def find_flag_mismatches(self) -> List[tuple]:
        """Debt/transaction pairs whose PAID and succeeded flags disagree"""
        return (
            self.db.query(Debt, PaymentTransaction)
            .join(PaymentTransaction, Debt.linked_transaction_id == PaymentTransaction.id)
            .filter(
                PaymentTransaction.transaction_type == TransactionType.DEBT_SETTLEMENT.value,
                or_(
                    and_(Debt.status == DebtStatus.PAID.value, PaymentTransaction.succeeded.is_(False)),
                    and_(Debt.status != DebtStatus.PAID.value, PaymentTransaction.succeeded.is_(True)),
                ),
            )
            .order_by(Debt.id)
            .all()
        )


class PaymentTransactionRepository:
    """Repository for OTP-gated payment transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(
        self,
        source_account_number: str,
        destination_account_number: str,
        amount: int,
        otp_code: str,
        otp_expires_at: datetime,
        fee_payer: str,
        transaction_type: str,
        message: str = "",
    ) -> PaymentTransaction:
        db_transaction = PaymentTransaction(
            source_account_number=source_account_number,
            destination_account_number=destination_account_number,
            amount=amount,
            otp_code=otp_code,
            otp_expires_at=otp_expires_at,
            fee_payer=fee_payer,
            succeeded=False,
            transaction_type=transaction_type,
            message=message,
        )
        self.db.add(db_transaction)
        self.db.flush()
        return db_transaction

    def get_by_id(self, transaction_id: int) -> Optional[PaymentTransaction]:
        return self.db.get(PaymentTransaction, transaction_id)


class NotificationRepository:
    """Repository for append-only notifications"""

    def __init__(self, db: Session):
        self.db = db

    def create_notification(
        self,
        user_id: int,
        message: str,
        debt_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> Notification:
        db_notification = Notification(
            user_id=user_id,
            transaction_id=transaction_id,
            debt_id=debt_id,
            message=message,
            is_seen=False,
        )
        self.db.add(db_notification)
        self.db.flush()
        return db_notification
