"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from debt_gateway.api.main import create_app
from debt_gateway.api.dependencies import get_auth_client, get_mail_client, get_settlement_coordinator, get_workflow_config
from debt_gateway.domain.exceptions import Unauthorized
from debt_gateway.domain.models import AccountType, OutboundMessage, Principal, Role, WorkflowConfig
from debt_gateway.infrastructure.database.locks import KeyedLockRegistry
from debt_gateway.infrastructure.database.models import Base, BankingAccount, UserAccount
from debt_gateway.infrastructure.database.session import get_db
from debt_gateway.services.settlement import SettlementCoordinator


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_OTP = "123456"


class FrozenClock:
    """Controllable replacement for utc_now"""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingMailClient:
    """Mail client double that keeps every message it was asked to send"""

    def __init__(self):
        self.sent: List[OutboundMessage] = []

    async def send_message(self, address: str, subject: str, body: str) -> None:
        self.sent.append(OutboundMessage(address=address, subject=subject, body=body))


class StaticAuthClient:
    """Auth client double mapping fixed tokens to principals"""

    def __init__(self, tokens: Dict[str, Principal]):
        self.tokens = tokens

    async def resolve_token(self, access_token: str) -> Principal:
        if access_token not in self.tokens:
            raise Unauthorized("Unauthorized user")
        return self.tokens[access_token]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def ledger(db: Session) -> Dict[str, object]:
    """
    Seeded bank:
    - alice (1): ACC1, balance 5000, reminds others
    - bob (2): ACC2, balance 3000, the usual debtor
    - carol (3): ACC3, balance 0, stranger to most debts
    - admin (4): no accounts
    """
    users = [
        UserAccount(id=1, username="alice", full_name="Alice Nguyen", email="alice@example.com", role=Role.CUSTOMER.value),
        UserAccount(id=2, username="bob", full_name="Bob Tran", email="bob@example.com", role=Role.CUSTOMER.value),
        UserAccount(id=3, username="carol", full_name="Carol Le", email="carol@example.com", role=Role.CUSTOMER.value),
        UserAccount(id=4, username="admin", full_name="Ops Admin", email="ops@example.com", role=Role.ADMINISTRATOR.value),
    ]
    accounts = [
        BankingAccount(account_number="ACC1", user_id=1, balance=5000, account_type=AccountType.ACTIVE_SPENDING.value,
                       holder_full_name="Alice Nguyen", holder_email="alice@example.com"),
        BankingAccount(account_number="ACC2", user_id=2, balance=3000, account_type=AccountType.ACTIVE_SPENDING.value,
                       holder_full_name="Bob Tran", holder_email="bob@example.com"),
        BankingAccount(account_number="ACC3", user_id=3, balance=0, account_type=AccountType.ACTIVE_SPENDING.value,
                       holder_full_name="Carol Le", holder_email="carol@example.com"),
    ]
    db.add_all(users)
    db.flush()
    db.add_all(accounts)
    db.commit()
    return {"users": {u.username: u.id for u in users}, "accounts": [a.account_number for a in accounts]}


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig(bank_name="Solar Banking", otp_ttl=timedelta(minutes=5), otp_length=6)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def locks() -> KeyedLockRegistry:
    return KeyedLockRegistry()


@pytest.fixture
def mail_client() -> RecordingMailClient:
    return RecordingMailClient()


@pytest.fixture
def client(db: Session, ledger, config: WorkflowConfig, clock: FrozenClock, mail_client: RecordingMailClient) -> TestClient:
    """Create FastAPI test client with test database, fixed OTPs and fake collaborators"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_settlement_coordinator():
        return SettlementCoordinator(db, config, otp_generator=lambda length: FIXED_OTP, clock=clock)

    auth_client = StaticAuthClient({
        "token-alice": Principal(user_id=1, role=Role.CUSTOMER.value),
        "token-bob": Principal(user_id=2, role=Role.CUSTOMER.value),
        "token-carol": Principal(user_id=3, role=Role.CUSTOMER.value),
        "token-admin": Principal(user_id=4, role=Role.ADMINISTRATOR.value),
    })

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow_config] = lambda: config
    app.dependency_overrides[get_settlement_coordinator] = override_get_settlement_coordinator
    app.dependency_overrides[get_auth_client] = lambda: auth_client
    app.dependency_overrides[get_mail_client] = lambda: mail_client
    return TestClient(app)


def auth_headers(user: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer token-{user}"}
