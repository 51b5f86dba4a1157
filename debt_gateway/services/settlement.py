"""Settlement coordinator - OTP challenge, verification and balance transfer"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from debt_gateway.domain.models import (
    AccountType,
    DebtStatus,
    TransactionType,
    WorkflowConfig,
    OutboundMessage,
    SettlementResult,
    SettlementInconsistency,
)
from debt_gateway.domain.exceptions import (
    NotFound,
    Forbidden,
    InvalidState,
    SpendingAccountLocked,
    InsufficientBalance,
    OtpInvalidOrExpired,
    TransactionAlreadySettled,
    InsufficientBalanceAtSettlement,
)
from debt_gateway.domain.lifecycle import ensure_payable, ensure_transition
from debt_gateway.domain.otp import generate_otp, otp_expiry, is_otp_valid
from debt_gateway.infrastructure.database.models import Debt, PaymentTransaction
from debt_gateway.infrastructure.database.locks import KeyedLockRegistry, debt_locks, debt_key
from debt_gateway.infrastructure.database.repositories import (
    DebtRepository,
    BankingAccountRepository,
    PaymentTransactionRepository,
    NotificationRepository,
)
from debt_gateway.infrastructure.observability.metrics import notification_failure_counter
from debt_gateway.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class SettlementCoordinator:
    """
    Drives a debt from payment request to settled transfer.

    Every operation on a debt runs under that debt's lock and, on PostgreSQL,
    a row lock on the debt, so OTP issuance and verification for one debt
    never interleave.
    """

    def __init__(
        self,
        db: Session,
        config: WorkflowConfig,
        locks: KeyedLockRegistry = debt_locks,
        otp_generator: Callable[[int], str] = generate_otp,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.config = config
        self.locks = locks
        self.otp_generator = otp_generator
        self.clock = clock
        self.debts = DebtRepository(db)
        self.accounts = BankingAccountRepository(db)
        self.transactions = PaymentTransactionRepository(db)
        self.notifications = NotificationRepository(db)

    def _load_debt(self, debt_id: int) -> Debt:
        debt = self.debts.get_by_id(debt_id, for_update=True)
        if debt is None:
            raise NotFound("Could not find this debt")
        return debt

    def request_otp(self, sender_id: int, debt_id: int) -> Tuple[PaymentTransaction, List[OutboundMessage]]:
        """
        Issue a fresh OTP for paying a debt.

        Flow:
        1. Debt must be NOT_PAID and the sender must own the debtor account
        2. Both sides need an active spending account
        3. Debtor account must cover the amount
        4. Create a pending transaction carrying the OTP and re-link the debt
           to it, which supersedes any earlier OTP

        Raises:
            NotFound, InvalidState, Forbidden, SpendingAccountLocked,
            InsufficientBalance
        """
        with self.locks.hold(debt_key(debt_id)):
            debt = self._load_debt(debt_id)
            ensure_payable(debt.status)

            debtor_account = self.accounts.get_by_number(debt.debtor_account_number)
            if debtor_account is None:
                raise NotFound(f"Account {debt.debtor_account_number} does not exist")
            if debtor_account.user_id != sender_id:
                raise Forbidden("This debt is not addressed to your account")
            if debtor_account.account_type != AccountType.ACTIVE_SPENDING.value:
                raise SpendingAccountLocked(
                    "You can not send or receive money because spending account is locked! "
                    "Please unlock to execute transaction."
                )

            requester_account = self.accounts.get_active_spending(debt.requester_id)
            if requester_account is None:
                raise SpendingAccountLocked("The debt reminder has no active spending account to receive money")

            if debtor_account.balance < debt.amount:
                raise InsufficientBalance("Your balance is not enough to make the payment")

            if debt.linked_transaction_id is not None:
                previous = self.transactions.get_by_id(debt.linked_transaction_id)
                if previous is not None and not previous.succeeded:
                    previous.otp_expires_at = self.clock()

            issued_at = self.clock()
            otp_code = self.otp_generator(self.config.otp_length)
            transaction = self.transactions.create_transaction(
                source_account_number=debtor_account.account_number,
                destination_account_number=requester_account.account_number,
                amount=debt.amount,
                otp_code=otp_code,
                otp_expires_at=otp_expiry(issued_at, self.config.otp_ttl),
                fee_payer=self.config.fee_payer.value,
                transaction_type=TransactionType.DEBT_SETTLEMENT.value,
                message=f"Payment for debit code {debt.id}",
            )
            debt.linked_transaction_id = transaction.id
            self.db.commit()

            minutes = int(self.config.otp_ttl.total_seconds() // 60)
            email = OutboundMessage(
                address=debtor_account.holder_email,
                subject=f"{self.config.bank_name}: Please verify your payment",
                body=(
                    f"Dear {debtor_account.holder_full_name},\n"
                    f"Here is the OTP code you need to verify payment: {otp_code}.\n"
                    f"This code will expire {minutes} minutes after this email was sent. "
                    "If you did not make this request, you can ignore this email."
                ),
            )
            return transaction, [email]

    def verify_and_settle(
        self,
        debt_id: int,
        submitted_otp: str,
        acting_user_id: Optional[int] = None,
    ) -> SettlementResult:
        """
        Verify the OTP and move the money.

        Unit of work, committed once:
        1. Debt -> PAID
        2. Transaction -> succeeded
        3. Credit destination (requester) balance
        4. Debit source (debtor) balance, only if it still covers the amount

        Any failure rolls back all four steps. The requester's in-app notice
        is stored afterwards in its own commit; losing it does not undo the
        payment.

        Raises:
            NotFound: Debt or linked transaction missing
            InvalidState: No OTP requested, or debt no longer open
            Forbidden: acting_user_id given and not the debtor
            TransactionAlreadySettled: Linked transaction already succeeded
            OtpInvalidOrExpired: Wrong or expired code
            InsufficientBalanceAtSettlement: Debtor balance dropped meanwhile
        """
        with self.locks.hold(debt_key(debt_id)):
            debt = self._load_debt(debt_id)
            if debt.linked_transaction_id is None:
                raise InvalidState("No payment has been requested for this debt")

            transaction = self.transactions.get_by_id(debt.linked_transaction_id)
            if transaction is None:
                raise NotFound("Could not find the payment transaction of this debt")
            if transaction.succeeded:
                raise TransactionAlreadySettled("This payment has already been completed")
            ensure_payable(debt.status)

            if acting_user_id is not None:
                debtor_account = self.accounts.get_by_number(debt.debtor_account_number)
                if debtor_account is None or debtor_account.user_id != acting_user_id:
                    raise Forbidden("This debt is not addressed to your account")

            now = self.clock()
            if not is_otp_valid(transaction.otp_code, transaction.otp_expires_at, submitted_otp, now):
                raise OtpInvalidOrExpired(
                    "Validation failed. OTP code may be incorrect or the session was expired!"
                )

            try:
                debt.status = ensure_transition(debt.status, DebtStatus.PAID).value
                transaction.succeeded = True
                transaction.settled_at = now
                self.db.flush()

                if not self.accounts.credit(transaction.destination_account_number, transaction.amount):
                    raise NotFound(f"Account {transaction.destination_account_number} does not exist")
                if not self.accounts.debit(transaction.source_account_number, transaction.amount):
                    raise InsufficientBalanceAtSettlement("Your balance is not enough to make the payment")

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            return SettlementResult(
                debt_id=debt.id,
                transaction_id=transaction.id,
                status=DebtStatus.PAID,
                amount=transaction.amount,
                notification_id=self._notify_requester(debt, transaction),
            )

    def _notify_requester(self, debt: Debt, transaction: PaymentTransaction) -> Optional[int]:
        """In-app notice, committed after the transfer so its failure leaves the payment in place"""
        try:
            notification = self.notifications.create_notification(
                user_id=debt.requester_id,
                message=f"Debit code {debt.id} has just been paid. Please check your account",
                debt_id=debt.id,
                transaction_id=transaction.id,
            )
            self.db.commit()
            return notification.id
        except SQLAlchemyError as e:
            self.db.rollback()
            notification_failure_counter.labels(channel="in_app").inc()
            logger.error(f"Payment notice not stored: {e}", extra={"debt_id": debt.id})
            return None

    def find_inconsistencies(self) -> List[SettlementInconsistency]:
        """
        Repair scan: debts and transactions whose final flags disagree.

        Settlements made through verify_and_settle commit atomically; rows
        written outside it (manual fixes, imports) can still diverge.
        """
        findings = []
        for debt, transaction in self.debts.find_flag_mismatches():
            if debt.status == DebtStatus.PAID.value:
                reason = "debt marked PAID but transaction not succeeded"
            else:
                reason = f"transaction succeeded but debt is {debt.status}"
            findings.append(
                SettlementInconsistency(
                    debt_id=debt.id,
                    transaction_id=transaction.id,
                    debt_status=debt.status,
                    transaction_succeeded=bool(transaction.succeeded),
                    reason=reason,
                )
            )
        if findings:
            logger.warning("Settlement inconsistencies found", extra={"count": len(findings)})
        return findings
