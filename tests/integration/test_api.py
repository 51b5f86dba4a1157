"""Integration tests for API endpoints"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from debt_gateway.infrastructure.database.models import BankingAccount, Notification
from conftest import FIXED_OTP, auth_headers


def create_debt(client: TestClient, amount: int = 1000, account_number: str = "ACC2", user: str = "alice") -> int:
    response = client.post(
        "/debtList/",
        json={"account_number": account_number, "amount": amount, "message": "Concert tickets"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200, response.text
    return response.json()["debt_id"]


def balance(db: Session, account_number: str) -> int:
    db.expire_all()
    return db.get(BankingAccount, account_number).balance


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "debt_settlement_total" in response.text


def test_missing_token_is_unauthorized(client: TestClient):
    response = client.get("/debtList/selfMade")
    assert response.status_code == 401
    assert response.json()["isSuccess"] is False


def test_unknown_token_is_unauthorized(client: TestClient):
    response = client.get("/debtList/selfMade", headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401


def test_non_customer_is_forbidden(client: TestClient):
    response = client.get("/debtList/selfMade", headers=auth_headers("admin"))
    assert response.status_code == 403
    assert response.json() == {"isSuccess": False, "message": "Not allowed user!"}


def test_create_debt_emails_debtor(client: TestClient, mail_client):
    debt_id = create_debt(client)

    assert debt_id > 0
    assert [m.address for m in mail_client.sent] == ["bob@example.com"]
    assert f"Debit code is: {debt_id}" in mail_client.sent[0].body


@pytest.mark.parametrize("payload", [
    {"account_number": "ACC2", "amount": 0},
    {"account_number": "ACC2", "amount": -10},
    {"account_number": "", "amount": 100},
    {"amount": 100},
])
def test_create_debt_invalid_input(client: TestClient, payload):
    response = client.post("/debtList/", json=payload, headers=auth_headers("alice"))

    assert response.status_code == 400
    assert response.json()["isSuccess"] is False


def test_create_debt_unknown_account(client: TestClient):
    response = client.post("/debtList/", json={"account_number": "ZZZ", "amount": 100}, headers=auth_headers("alice"))

    assert response.status_code == 500
    assert response.json() == {"isSuccess": False, "message": "Account ZZZ does not exist"}


def test_list_self_made_and_other_made(client: TestClient):
    debt_id = create_debt(client)

    mine = client.get("/debtList/selfMade", headers=auth_headers("alice")).json()
    theirs = client.get("/debtList/otherMade", headers=auth_headers("bob")).json()

    assert mine["isSuccess"] is True
    assert [d["id"] for d in mine["list_debt"]] == [debt_id]
    assert [d["id"] for d in theirs["list_debt"]] == [debt_id]
    assert theirs["list_debt"][0]["status"] == "NOT_PAID"
    assert theirs["list_debt"][0]["debtor_account_number"] == "ACC2"


def test_other_made_without_account(client: TestClient, db: Session):
    db.query(BankingAccount).filter(BankingAccount.user_id == 3).delete()
    db.commit()

    response = client.get("/debtList/otherMade", headers=auth_headers("carol"))

    assert response.status_code == 500
    assert response.json()["message"] == "You do not have access"


def test_get_debt_detail(client: TestClient):
    debt_id = create_debt(client, amount=750)

    response = client.get(f"/debtList/{debt_id}", headers=auth_headers("alice"))

    assert response.status_code == 200
    data = response.json()
    assert data["objDebt"]["id"] == debt_id
    assert data["objDebt"]["amount"] == 750
    assert data["objDebt"]["requester_id"] == 1


def test_get_debt_not_found(client: TestClient):
    response = client.get("/debtList/9999", headers=auth_headers("alice"))

    assert response.status_code == 500
    assert response.json() == {"isSuccess": False, "message": "Could not find this debt"}


def test_full_settlement_flow(client: TestClient, db: Session, mail_client):
    """Alice reminds Bob of 1000; Bob requests an OTP and pays with it"""
    debt_id = create_debt(client)

    otp_response = client.post("/debtList/sendOtp", json={"debt_id": debt_id}, headers=auth_headers("bob"))
    assert otp_response.status_code == 200
    assert otp_response.json()["message"] == "OTP code has been sent. Please check your email"
    assert FIXED_OTP in mail_client.sent[-1].body

    pay_response = client.post(
        "/debtList/internal/verified-payment",
        json={"debt_id": debt_id, "otp": FIXED_OTP},
        headers=auth_headers("bob"),
    )
    assert pay_response.status_code == 200
    assert pay_response.json() == {"isSuccess": True, "message": "Payment Successful", "status": "PAID"}

    assert balance(db, "ACC2") == 2000
    assert balance(db, "ACC1") == 6000
    assert db.query(Notification).filter(Notification.user_id == 1).count() == 1

    detail = client.get(f"/debtList/{debt_id}", headers=auth_headers("alice")).json()
    assert detail["objDebt"]["status"] == "PAID"

    again = client.post(
        "/debtList/internal/verified-payment",
        json={"debt_id": debt_id, "otp": FIXED_OTP},
        headers=auth_headers("bob"),
    )
    assert again.status_code == 500
    assert again.json()["isSuccess"] is False
    assert balance(db, "ACC2") == 2000


def test_wrong_otp_is_rejected(client: TestClient, db: Session):
    debt_id = create_debt(client)
    client.post("/debtList/sendOtp", json={"debt_id": debt_id}, headers=auth_headers("bob"))

    response = client.post(
        "/debtList/internal/verified-payment",
        json={"debt_id": debt_id, "otp": "000000"},
        headers=auth_headers("bob"),
    )

    assert response.status_code == 500
    assert response.json() == {
        "isSuccess": False,
        "message": "Validation failed. OTP code may be incorrect or the session was expired!",
    }
    assert balance(db, "ACC2") == 3000
    detail = client.get(f"/debtList/{debt_id}", headers=auth_headers("bob")).json()
    assert detail["objDebt"]["status"] == "NOT_PAID"


def test_expired_otp_is_rejected(client: TestClient, clock):
    debt_id = create_debt(client)
    client.post("/debtList/sendOtp", json={"debt_id": debt_id}, headers=auth_headers("bob"))
    clock.advance(minutes=6)

    response = client.post(
        "/debtList/internal/verified-payment",
        json={"debt_id": debt_id, "otp": FIXED_OTP},
        headers=auth_headers("bob"),
    )

    assert response.status_code == 500


def test_numeric_otp_is_accepted(client: TestClient):
    debt_id = create_debt(client)
    client.post("/debtList/sendOtp", json={"debt_id": debt_id}, headers=auth_headers("bob"))

    response = client.post(
        "/debtList/internal/verified-payment",
        json={"debt_id": debt_id, "otp": int(FIXED_OTP)},
        headers=auth_headers("bob"),
    )

    assert response.status_code == 200


def test_send_otp_insufficient_balance(client: TestClient):
    debt_id = create_debt(client, amount=10_000)

    response = client.post("/debtList/sendOtp", json={"debt_id": debt_id}, headers=auth_headers("bob"))

    assert response.status_code == 500
    assert response.json()["message"] == "Your balance is not enough to make the payment"


def test_send_otp_unknown_debt(client: TestClient):
    response = client.post("/debtList/sendOtp", json={"debt_id": 404}, headers=auth_headers("bob"))

    assert response.status_code == 500
    assert response.json()["message"] == "Could not find this debt"


def test_cancel_debt(client: TestClient, db: Session):
    debt_id = create_debt(client)

    response = client.request(
        "DELETE",
        f"/debtList/cancelDebt/{debt_id}",
        json={"cancel_message": "Sorted it out in person"},
        headers=auth_headers("bob"),
    )

    assert response.status_code == 200
    assert response.json() == {"isSuccess": True, "message": "Cancel successful"}
    notice = db.query(Notification).one()
    assert notice.user_id == 2
    assert notice.message == "Sorted it out in person"


def test_cancel_twice_is_conflict(client: TestClient):
    debt_id = create_debt(client)
    client.request("DELETE", f"/debtList/cancelDebt/{debt_id}", headers=auth_headers("alice"))

    response = client.request("DELETE", f"/debtList/cancelDebt/{debt_id}", headers=auth_headers("alice"))

    assert response.status_code == 409
    assert response.json()["isSuccess"] is False


def test_cancel_unknown_debt(client: TestClient):
    response = client.request("DELETE", "/debtList/cancelDebt/31337", headers=auth_headers("alice"))

    assert response.status_code == 500
    assert response.json()["message"] == "Could not find this debt"


def test_reconciliation_requires_administrator(client: TestClient):
    assert client.get("/debtList/internal/reconciliation", headers=auth_headers("alice")).status_code == 403

    response = client.get("/debtList/internal/reconciliation", headers=auth_headers("admin"))

    assert response.status_code == 200
    assert response.json()["inconsistencies"] == []


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_bare_access_token_header_is_accepted(client: TestClient):
    response = client.get("/debtList/selfMade", headers={"access_token": "token-alice"})
    assert response.status_code == 200
