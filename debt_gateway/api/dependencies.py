"""Dependency injection for FastAPI endpoints"""

from typing import Optional
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from debt_gateway.config import settings
from debt_gateway.domain.models import Principal, Role, WorkflowConfig
from debt_gateway.domain.exceptions import Unauthorized, Forbidden
from debt_gateway.infrastructure.clients.auth import AuthClient
from debt_gateway.infrastructure.clients.mail import MailClient
from debt_gateway.infrastructure.database.session import get_db
from debt_gateway.infrastructure.observability.metrics import auth_failures_counter
from debt_gateway.services.debt_lifecycle import DebtLifecycleManager
from debt_gateway.services.settlement import SettlementCoordinator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_auth_client() -> AuthClient:
    """Provide auth service client instance"""
    return AuthClient()


def get_mail_client() -> MailClient:
    """Provide mail relay client instance"""
    return MailClient()


def get_workflow_config() -> WorkflowConfig:
    return WorkflowConfig.from_settings(settings)


async def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    access_token: Optional[str] = Header(default=None, convert_underscores=False),
    auth_client: AuthClient = Depends(get_auth_client),
) -> Principal:
    """Resolve the caller from 'Authorization: Bearer <token>' (or a bare access_token header)"""
    token = None
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            token = credentials.strip()
    elif access_token:
        token = access_token

    if not token:
        auth_failures_counter.inc()
        raise Unauthorized("Unauthorized user!")

    try:
        return await auth_client.resolve_token(token)
    except Unauthorized:
        auth_failures_counter.inc()
        raise


def require_role(role: Role):
    """Build a dependency that only lets callers with the given role through"""

    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role != role.value:
            raise Forbidden("Not allowed user!")
        return principal

    return checker


require_customer = require_role(Role.CUSTOMER)
require_administrator = require_role(Role.ADMINISTRATOR)


def get_debt_manager(
    db: Session = Depends(get_db),
    config: WorkflowConfig = Depends(get_workflow_config),
) -> DebtLifecycleManager:
    return DebtLifecycleManager(db, config)


def get_settlement_coordinator(
    db: Session = Depends(get_db),
    config: WorkflowConfig = Depends(get_workflow_config),
) -> SettlementCoordinator:
    return SettlementCoordinator(db, config)
