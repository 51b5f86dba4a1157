"""/debtList endpoints - debt reminders and OTP-gated settlement"""

import time
import logging
from contextlib import contextmanager
from typing import Iterator, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from debt_gateway.api.v1.schemas import (
    DebtCreateRequest,
    SendOtpRequest,
    VerifyPaymentRequest,
    DebtCancelRequest,
    DebtSchema,
    MessageResponse,
    DebtCreatedResponse,
    DebtListResponse,
    DebtDetailResponse,
    PaymentResponse,
    InconsistencySchema,
    ReconciliationResponse,
)
from debt_gateway.api.dependencies import (
    get_request_id,
    get_mail_client,
    get_debt_manager,
    get_settlement_coordinator,
    require_customer,
    require_administrator,
)
from debt_gateway.domain.models import Principal
from debt_gateway.domain.exceptions import (
    DomainException,
    InvalidState,
    SettlementRejected,
    InsufficientBalanceAtSettlement,
)
from debt_gateway.infrastructure.clients.mail import MailClient
from debt_gateway.infrastructure.observability.logging import log_debt_event, log_settlement
from debt_gateway.infrastructure.observability.metrics import otp_issued_counter, record_settlement
from debt_gateway.services.debt_lifecycle import DebtLifecycleManager
from debt_gateway.services.settlement import SettlementCoordinator
from debt_gateway.services.notifications import dispatch_messages

router = APIRouter()


@contextmanager
def guarded(db: Session, request_id: str, step: str) -> Iterator[None]:
    """Roll back on any failure; hide unexpected errors behind a generic 500"""
    try:
        yield
    except DomainException as e:
        db.rollback()
        logging.warning(f"{step} refused: {e.message}", extra={"request_id": request_id, "step": step})
        raise
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id, "step": step})
        raise DomainException("Internal server error") from e


def settlement_outcome(error: DomainException) -> str:
    if isinstance(error, SettlementRejected):
        return "rejected"
    if isinstance(error, InsufficientBalanceAtSettlement):
        return "insufficient_balance"
    if isinstance(error, InvalidState):
        return "invalid_state"
    return "error"


@router.get("/selfMade", response_model=DebtListResponse)
def list_self_made(
    request: Request,
    principal: Principal = Depends(require_customer),
    manager: DebtLifecycleManager = Depends(get_debt_manager),
):
    """Debts the caller has sent as payment reminders"""
    with guarded(manager.db, get_request_id(request), "list_self_made"):
        debts = manager.list_self_made(principal.user_id)

    return DebtListResponse(
        isSuccess=True,
        message="This is all debts of you",
        list_debt=[DebtSchema.model_validate(d) for d in debts],
    )


@router.get("/otherMade", response_model=DebtListResponse)
def list_other_made(
    request: Request,
    principal: Principal = Depends(require_customer),
    manager: DebtLifecycleManager = Depends(get_debt_manager),
):
    """Debts other users addressed to the caller's accounts"""
    with guarded(manager.db, get_request_id(request), "list_other_made"):
        debts = manager.list_received_by_user(principal.user_id)

    return DebtListResponse(
        isSuccess=True,
        message="This is all debts of you",
        list_debt=[DebtSchema.model_validate(d) for d in debts],
    )


@router.get("/internal/reconciliation", response_model=ReconciliationResponse)
def reconcile_settlements(
    request: Request,
    principal: Principal = Depends(require_administrator),
    coordinator: SettlementCoordinator = Depends(get_settlement_coordinator),
):
    """List debts whose PAID flag disagrees with their transaction's succeeded flag"""
    with guarded(coordinator.db, get_request_id(request), "reconciliation"):
        findings = coordinator.find_inconsistencies()

    return ReconciliationResponse(
        isSuccess=True,
        message=f"{len(findings)} inconsistent settlement(s) found",
        inconsistencies=[InconsistencySchema(**vars(f)) for f in findings],
    )


@router.get("/{debt_id}", response_model=DebtDetailResponse)
def get_debt(
    debt_id: int,
    request: Request,
    principal: Principal = Depends(require_customer),
    manager: DebtLifecycleManager = Depends(get_debt_manager),
):
    with guarded(manager.db, get_request_id(request), "get_debt"):
        debt = manager.get_debt(debt_id)

    return DebtDetailResponse(
        isSuccess=True,
        message="This is detail of debt",
        objDebt=DebtSchema.model_validate(debt),
    )


@router.post("/", response_model=DebtCreatedResponse)
def create_debt(
    request_body: DebtCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: Principal = Depends(require_customer),
    manager: DebtLifecycleManager = Depends(get_debt_manager),
    mail_client: MailClient = Depends(get_mail_client),
):
    """
    Create a payment reminder.

    Flow:
    1. Persist the debt as NOT_PAID
    2. Schedule the debtor's email after the response (failure is only logged)
    """
    request_id = get_request_id(request)

    with guarded(manager.db, request_id, "create_debt"):
        debt, messages = manager.create_debt(
            requester_id=principal.user_id,
            debtor_account_number=request_body.account_number,
            amount=request_body.amount,
            message=request_body.message,
        )

    background_tasks.add_task(dispatch_messages, mail_client, messages)
    log_debt_event(request_id, debt.id, "created", user_id=principal.user_id, amount=debt.amount)

    return DebtCreatedResponse(isSuccess=True, message="Create new debt successful!", debt_id=debt.id)


@router.post("/sendOtp", response_model=MessageResponse)
def send_otp(
    request_body: SendOtpRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: Principal = Depends(require_customer),
    coordinator: SettlementCoordinator = Depends(get_settlement_coordinator),
    mail_client: MailClient = Depends(get_mail_client),
):
    """Issue a payment OTP to the debtor and create the pending transaction"""
    request_id = get_request_id(request)

    with guarded(coordinator.db, request_id, "send_otp"):
        transaction, messages = coordinator.request_otp(principal.user_id, request_body.debt_id)

    otp_issued_counter.inc()
    background_tasks.add_task(dispatch_messages, mail_client, messages)
    log_debt_event(
        request_id,
        request_body.debt_id,
        "otp_issued",
        user_id=principal.user_id,
        transaction_id=transaction.id,
    )

    return MessageResponse(isSuccess=True, message="OTP code has been sent. Please check your email")


@router.post("/internal/verified-payment", response_model=PaymentResponse)
def verified_payment(
    request_body: VerifyPaymentRequest,
    request: Request,
    principal: Principal = Depends(require_customer),
    coordinator: SettlementCoordinator = Depends(get_settlement_coordinator),
):
    """Verify the OTP and settle the debt"""
    start_time = time.time()
    request_id = get_request_id(request)

    with guarded(coordinator.db, request_id, "verified_payment"):
        try:
            result = coordinator.verify_and_settle(
                request_body.debt_id,
                request_body.otp,
                acting_user_id=principal.user_id,
            )
        except DomainException as e:
            outcome = settlement_outcome(e)
            record_settlement(outcome)
            log_settlement(request_id, request_body.debt_id, outcome, 0, (time.time() - start_time) * 1000)
            raise

    record_settlement("settled", result.amount)
    log_settlement(request_id, result.debt_id, "settled", result.amount, (time.time() - start_time) * 1000)

    return PaymentResponse(isSuccess=True, message="Payment Successful", status=result.status.value)


@router.delete("/cancelDebt/{debt_id}", response_model=MessageResponse)
def cancel_debt(
    debt_id: int,
    request: Request,
    request_body: Optional[DebtCancelRequest] = None,
    principal: Principal = Depends(require_customer),
    manager: DebtLifecycleManager = Depends(get_debt_manager),
):
    request_id = get_request_id(request)
    cancel_message = request_body.cancel_message if request_body is not None else ""

    with guarded(manager.db, request_id, "cancel_debt"):
        manager.cancel_debt(debt_id, principal.user_id, cancel_message)

    log_debt_event(request_id, debt_id, "cancelled", user_id=principal.user_id)
    return MessageResponse(isSuccess=True, message="Cancel successful")
