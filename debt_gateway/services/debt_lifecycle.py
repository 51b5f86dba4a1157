"""Debt lifecycle manager - creation, lookup and cancellation of debts"""

import logging
from datetime import datetime
from typing import Callable, List, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from debt_gateway.domain.models import DebtStatus, WorkflowConfig, OutboundMessage
from debt_gateway.domain.exceptions import InvalidInput, NotFound, Forbidden
from debt_gateway.domain.lifecycle import ensure_transition
from debt_gateway.infrastructure.database.models import Debt
from debt_gateway.infrastructure.database.locks import KeyedLockRegistry, debt_locks, debt_key
from debt_gateway.infrastructure.database.repositories import (
    DebtRepository,
    BankingAccountRepository,
    UserRepository,
    NotificationRepository,
    PaymentTransactionRepository,
)
from debt_gateway.infrastructure.observability.metrics import debt_created_counter, debt_cancelled_counter, notification_failure_counter
from debt_gateway.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class DebtLifecycleManager:
    """Owns the NOT_PAID -> PAID | CANCELLED state machine of a debt"""

    def __init__(
        self,
        db: Session,
        config: WorkflowConfig,
        locks: KeyedLockRegistry = debt_locks,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.config = config
        self.locks = locks
        self.clock = clock
        self.debts = DebtRepository(db)
        self.accounts = BankingAccountRepository(db)
        self.users = UserRepository(db)
        self.transactions = PaymentTransactionRepository(db)
        self.notifications = NotificationRepository(db)

    def list_self_made(self, requester_id: int) -> List[Debt]:
        return self.debts.list_by_requester(requester_id)

    def list_received_debts(self, debtor_account_number: str) -> List[Debt]:
        return self.debts.list_by_debtor_accounts([debtor_account_number])

    def list_received_by_user(self, user_id: int) -> List[Debt]:
        """Debts targeting any account the user owns"""
        accounts = self.accounts.list_by_user(user_id)
        if not accounts:
            raise NotFound("You do not have access")
        return self.debts.list_by_debtor_accounts([a.account_number for a in accounts])

    def get_debt(self, debt_id: int) -> Debt:
        debt = self.debts.get_by_id(debt_id)
        if debt is None:
            raise NotFound("Could not find this debt")
        return debt

    def create_debt(
        self,
        requester_id: int,
        debtor_account_number: str,
        amount: int,
        message: str = "",
    ) -> Tuple[Debt, List[OutboundMessage]]:
        """
        Persist a NOT_PAID debt and prepare the debtor's heads-up email.

        The email is returned rather than sent: delivery happens after commit
        and its failure never undoes the debt.

        Raises:
            InvalidInput: Non-positive or non-integer amount, blank account
            NotFound: Unknown requester or debtor account
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidInput("Debt amount must be a positive integer")
        if not debtor_account_number:
            raise InvalidInput("Debtor account number is required")

        requester = self.users.get_by_id(requester_id)
        if requester is None:
            raise InvalidInput("You do not have access")

        debtor_account = self.accounts.get_by_number(debtor_account_number)
        if debtor_account is None:
            raise NotFound(f"Account {debtor_account_number} does not exist")

        debt = self.debts.create_debt(
            requester_id=requester_id,
            debtor_account_number=debtor_account_number,
            amount=amount,
            message=message or "",
        )
        self.db.commit()
        debt_created_counter.inc()

        email = OutboundMessage(
            address=debtor_account.holder_email,
            subject=f"{self.config.bank_name}: You have new debt",
            body=(
                f"Dear {debtor_account.holder_full_name},\n"
                f"{requester.full_name} has sent you a payment reminder of {amount}. "
                f"Debit code is: {debt.id}."
            ),
        )
        return debt, [email]

    def cancel_debt(self, debt_id: int, acting_user_id: int, cancel_message: str = "") -> Debt:
        """
        Cancel an open debt and leave an in-app notice.

        Notice routing: a requester cancelling their own reminder gets the
        acknowledgement themselves; otherwise it goes to the owner of the
        debtor account.

        Raises:
            NotFound: Debt does not exist
            Forbidden: Caller is neither the requester nor the debtor
            InvalidState: Debt is already PAID or CANCELLED
        """
        with self.locks.hold(debt_key(debt_id)):
            debt = self.debts.get_by_id(debt_id, for_update=True)
            if debt is None:
                raise NotFound("Could not find this debt")

            debtor_account = self.accounts.get_by_number(debt.debtor_account_number)
            debtor_user_id = debtor_account.user_id if debtor_account is not None else None

            cancelled_by_requester = acting_user_id == debt.requester_id
            if not cancelled_by_requester and acting_user_id != debtor_user_id:
                raise Forbidden("You are not a party to this debt")

            debt.status = ensure_transition(debt.status, DebtStatus.CANCELLED).value
            debt.cancel_message = cancel_message or ""

            # An outstanding OTP must not be able to pay a cancelled debt
            if debt.linked_transaction_id is not None:
                transaction = self.transactions.get_by_id(debt.linked_transaction_id)
                if transaction is not None and not transaction.succeeded:
                    transaction.otp_expires_at = self.clock()

            self.db.commit()
            debt_cancelled_counter.labels(actor="requester" if cancelled_by_requester else "debtor").inc()

            recipient_id = debt.requester_id if cancelled_by_requester else debtor_user_id
            self._notify_cancellation(debt, recipient_id, cancel_message)
            return debt

    def _notify_cancellation(self, debt: Debt, recipient_id, cancel_message: str) -> None:
        """In-app notice, committed separately so its failure leaves the cancellation in place"""
        if recipient_id is None:
            logger.warning(
                "Cancellation notice skipped, debtor account has no owner",
                extra={"debt_id": debt.id},
            )
            return
        try:
            self.notifications.create_notification(
                user_id=recipient_id,
                message=cancel_message or f"Debit code {debt.id} has been cancelled",
                debt_id=debt.id,
                transaction_id=debt.linked_transaction_id,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            notification_failure_counter.labels(channel="in_app").inc()
            logger.error(f"Cancellation notice not stored: {e}", extra={"debt_id": debt.id})
