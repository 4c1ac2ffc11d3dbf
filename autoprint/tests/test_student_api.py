"""
Integration tests for the student API.

Document registration -> job submission -> payment -> queue admission.
"""

import pytest
from decimal import Decimal

from autoprint.app.core.config import settings


DOCUMENT = {
    "original_name": "thesis.pdf",
    "file_name": "thesis-8d2f.pdf",
    "mime_type": "application/pdf",
    "file_size": 20480,
    "page_count": 5,
}


async def _register_document(client, headers, **overrides):
    response = await client.post("/v1/documents", json={**DOCUMENT, **overrides}, headers=headers)
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_register_and_read_document(client, auth_headers, student):
    document = await _register_document(client, auth_headers, copies=2)

    assert document["account_id"] == student.id
    assert document["copies"] == 2
    assert document["color_mode"] == "black_and_white"

    response = await client.get(f"/v1/documents/{document['id']}", headers=auth_headers)
    assert response.status_code == 200

    listing = await client.get("/v1/documents", headers=auth_headers)
    assert [d["id"] for d in listing.json()] == [document["id"]]


@pytest.mark.asyncio
async def test_other_accounts_documents_are_not_found(client, db_session, auth_headers, make_account, student_headers):
    other = await make_account(db_session, "student2")
    document = await _register_document(client, student_headers(other))

    response = await client.get(f"/v1/documents/{document['id']}", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"

    response = await client.post("/v1/print-jobs", json={"document_id": document["id"]}, headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_document_validation(client, auth_headers):
    response = await client.post("/v1/documents", json={**DOCUMENT, "page_count": 0}, headers=auth_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_unfunded_submission_waits_for_payment(client, auth_headers):
    document = await _register_document(client, auth_headers)

    response = await client.post("/v1/print-jobs", json={"document_id": document["id"]}, headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["admitted"] is False
    assert Decimal(data["balance"]) == Decimal("0")
    assert data["job"]["status"] == "awaiting_payment"
    assert data["job"]["queue_position"] is None
    assert Decimal(data["job"]["total_cost"]) == Decimal("10.00")


@pytest.mark.asyncio
async def test_payment_for_job_then_verification_queues_it(client, auth_headers, operator_headers):
    document = await _register_document(client, auth_headers)
    job = (await client.post("/v1/print-jobs", json={"document_id": document["id"]}, headers=auth_headers)).json()["job"]

    response = await client.post(
        "/v1/payments",
        json={"amount": "10.00", "method": "mobile_wallet", "transaction_id": "BK-1001", "print_job_id": job["id"]},
        headers=auth_headers
    )
    assert response.status_code == 201
    payment = response.json()
    assert payment["status"] == "pending"
    assert payment["currency"] == settings.currency

    response = await client.put(
        f"/v1/admin/payments/{payment['id']}/verify",
        json={"notes": "Matched bKash statement"},
        headers=operator_headers
    )
    assert response.status_code == 200
    assert response.json()["admitted_job_ids"] == [job["id"]]
    assert response.json()["payment"]["verified_by"] == "admin"

    response = await client.get(f"/v1/print-jobs/{job['id']}", headers=auth_headers)
    assert response.json()["status"] == "queued"
    assert response.json()["queue_position"] == 1

    balance = (await client.get("/v1/account/balance", headers=auth_headers)).json()
    assert Decimal(balance["balance"]) == Decimal("0")

    ledger = (await client.get("/v1/account/ledger", headers=auth_headers)).json()
    assert [entry["entry_type"] for entry in ledger] == ["debit", "credit"]
    assert ledger[0]["print_job_id"] == job["id"]
    assert ledger[1]["payment_id"] == payment["id"]


@pytest.mark.asyncio
async def test_list_my_jobs_and_payments_with_status_filter(client, db_session, student, auth_headers, top_up):
    await top_up(db_session, student.id, "10.00")
    first = await _register_document(client, auth_headers)
    second = await _register_document(client, auth_headers)
    await client.post("/v1/print-jobs", json={"document_id": first["id"]}, headers=auth_headers)
    await client.post("/v1/print-jobs", json={"document_id": second["id"]}, headers=auth_headers)

    response = await client.get("/v1/print-jobs", params={"status": "queued"}, headers=auth_headers)
    assert response.json()["total"] == 1
    response = await client.get("/v1/print-jobs", headers=auth_headers)
    assert response.json()["total"] == 2

    payments = (await client.get("/v1/payments", params={"status": "verified"}, headers=auth_headers)).json()
    assert payments["total"] == 1


@pytest.mark.asyncio
async def test_non_positive_payment_is_rejected(client, auth_headers):
    response = await client.post("/v1/payments", json={"amount": "0", "method": "card"}, headers=auth_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_gateway_callback(client, auth_headers):
    payment = (await client.post(
        "/v1/payments", json={"amount": "15.00", "method": "card"}, headers=auth_headers
    )).json()
    url = f"/v1/payments/{payment['id']}/gateway-callback"

    response = await client.post(url, json={"transaction_id": "GW-7"}, headers={"X-Gateway-Secret": "wrong"})
    assert response.status_code == 401

    response = await client.post(
        url, json={"transaction_id": "GW-7"}, headers={"X-Gateway-Secret": settings.gateway_callback_secret}
    )
    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "completed"

    response = await client.post(url, json={}, headers={"X-Gateway-Secret": settings.gateway_callback_secret})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_002"

    balance = (await client.get("/v1/account/balance", headers=auth_headers)).json()
    assert Decimal(balance["balance"]) == Decimal("15.00")


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.get("/v1/account/balance", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_inactive_account_is_forbidden(client, db_session, make_account, student_headers):
    account = await make_account(db_session, "graduated", is_active=False)

    response = await client.get("/v1/account/balance", headers=student_headers(account))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_operator_token_cannot_act_as_student(client, operator_headers):
    response = await client.get("/v1/account/balance", headers=operator_headers)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_role_claim_is_taken_from_the_account(client, student):
    from autoprint.app.core.jwt import create_access_token

    token = create_access_token(data={"sub": student.username, "account_id": student.id, "role": "admin"})

    response = await client.get("/v1/account/balance", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_split_payments_queue_the_job(client, auth_headers, operator_headers):
    document = await _register_document(client, auth_headers)
    job = (await client.post("/v1/print-jobs", json={"document_id": document["id"]}, headers=auth_headers)).json()["job"]

    first = (await client.post(
        "/v1/payments", json={"amount": "5.00", "method": "card", "print_job_id": job["id"]}, headers=auth_headers
    )).json()
    response = await client.put(f"/v1/admin/payments/{first['id']}/verify", headers=operator_headers)
    assert response.json()["admitted_job_ids"] == []

    response = await client.post(
        "/v1/payments", json={"amount": "5.00", "method": "card", "print_job_id": job["id"]}, headers=auth_headers
    )
    assert response.status_code == 201

    response = await client.put(f"/v1/admin/payments/{response.json()['id']}/verify", headers=operator_headers)
    assert response.json()["admitted_job_ids"] == [job["id"]]

    response = await client.get(f"/v1/print-jobs/{job['id']}", headers=auth_headers)
    assert response.json()["status"] == "queued"
