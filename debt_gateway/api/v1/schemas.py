"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Optional


class DebtCreateRequest(BaseModel):
    """Request body for POST /debtList/"""

    account_number: str = Field(..., min_length=1, max_length=32, description="Debtor account number")
    amount: int = Field(..., gt=0, description="Requested amount in minor units")
    message: str = Field("", max_length=500)


class SendOtpRequest(BaseModel):
    """Request body for POST /debtList/sendOtp"""

    debt_id: int = Field(..., gt=0)


class VerifyPaymentRequest(BaseModel):
    """Request body for POST /debtList/internal/verified-payment"""

    debt_id: int = Field(..., gt=0)
    otp: str = Field(..., pattern=r"^\d{4,10}$")

    @field_validator("otp", mode="before")
    @classmethod
    def otp_as_text(cls, value):
        # Some clients post the code as a JSON number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class DebtCancelRequest(BaseModel):
    """Request body for DELETE /debtList/cancelDebt/{debt_id}"""

    cancel_message: str = Field("", max_length=500)


class DebtSchema(BaseModel):
    """Debt as exposed to its requester and debtor"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    debtor_account_number: str
    amount: int
    message: str
    status: str
    cancel_message: str
    linked_transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    isSuccess: bool
    message: str


class DebtCreatedResponse(MessageResponse):
    debt_id: int


class DebtListResponse(MessageResponse):
    list_debt: List[DebtSchema]


class DebtDetailResponse(MessageResponse):
    objDebt: DebtSchema


class PaymentResponse(MessageResponse):
    status: str


class InconsistencySchema(BaseModel):
    debt_id: int
    transaction_id: int
    debt_status: str
    transaction_succeeded: bool
    reason: str


class ReconciliationResponse(MessageResponse):
    inconsistencies: List[InconsistencySchema]
