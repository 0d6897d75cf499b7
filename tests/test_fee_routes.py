from conftest import INSTITUTION, YEAR

STRUCTURE = {
    "institution_id": INSTITUTION,
    "name": "Class 5 Fees",
    "academic_year_id": YEAR,
    "academic_unit_id": "class-5",
    "components": [
        {"name": "Tuition", "fee_type": "TUITION", "amount": "10000"},
    ],
}


def create_structure(client, **overrides):
    response = client.post("/api/fees/structures/create", json={**STRUCTURE, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


def create_ledger(client, structure_id, **extra):
    body = {"student_id": "stu-1", "fee_structure_id": structure_id, "due_date": "2099-06-30", **extra}
    response = client.post("/api/fees/student-fees/create", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_full_billing_flow(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"], discounts=[
        {"name": "Sibling", "discount_type": "PERCENTAGE", "discount_value": "10", "reason": "Sibling"}
    ])
    assert float(ledger["final_amount"]) == 9000

    response = client.post(f"/api/fees/student-fees/{ledger['id']}/scholarships", json={
        "name": "Merit", "scholarship_amount": "2000", "status": "APPROVED", "approved_by": "trustee",
    })
    assert response.status_code == 200, response.text
    assert float(response.json()["final_amount"]) == 7000

    response = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "7000", "payment_method": "UPI", "transaction_id": "UPI-99",
    })
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["payment"]["receipt_number"] == "RCP000001"
    assert body["ledger"]["status"] == "PAID"

    receipt = client.get(f"/api/fees/payments/receipt/{INSTITUTION}/RCP000001")
    assert receipt.status_code == 200
    assert receipt.json()["transaction_id"] == "UPI-99"

    again = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "1", "payment_method": "CASH",
    })
    assert again.status_code == 400
    assert again.json()["kind"] == "state_error"


def test_error_bodies_carry_kind_and_field(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])

    missing = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "100", "payment_method": "CHEQUE",
    })
    assert missing.status_code == 422
    assert missing.json() == {
        "detail": "Reference number is required for CHEQUE payment",
        "kind": "validation_error",
        "field": "reference_number",
        "entity_id": None,
    }

    too_much = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "10000.01", "payment_method": "CASH",
    })
    assert too_much.status_code == 409
    assert too_much.json()["field"] == "amount"

    assert client.get("/api/fees/student-fees/get-by/9999").status_code == 404


def test_unknown_enum_rejected_by_schema(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])
    response = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "100", "payment_method": "BITCOIN",
    })
    assert response.status_code == 422


def test_locked_structure_and_delete_flow(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])

    locked = client.put(f"/api/fees/structures/put-by/{structure['id']}", json={
        "components": [{"name": "Tuition", "fee_type": "TUITION", "amount": "1"}],
    })
    assert locked.status_code == 409

    assert client.delete(f"/api/fees/structures/delete-by/{structure['id']}").status_code == 409
    assert client.delete(f"/api/fees/student-fees/delete-by/{ledger['id']}").status_code == 200
    assert client.delete(f"/api/fees/structures/delete-by/{structure['id']}").status_code == 200


def test_resolve_and_preview(client):
    create_structure(client, name="Everyone", academic_unit_id=None)
    specific = create_structure(client)

    resolved = client.get("/api/fees/structures/resolve", params={"academic_year_id": YEAR, "class_id": "class-5"})
    assert resolved.json()["id"] == specific["id"]
    missing = client.get("/api/fees/structures/resolve", params={"academic_year_id": "1990-91", "class_id": "class-5"})
    assert missing.status_code == 404

    preview = client.post(f"/api/fees/structures/preview/{specific['id']}", json={
        "discounts": [{"name": "Staff", "discount_type": "FIXED_AMOUNT", "discount_value": "1500", "reason": "Staff ward"}],
    })
    assert preview.status_code == 200
    assert float(preview.json()["final_amount"]) == 8500


def test_sweep_endpoint(client):
    structure = create_structure(client)
    create_ledger(client, structure["id"], due_date="2099-06-30")
    response = client.post("/api/fees/student-fees/sweep-overdue", json={"now": "2099-07-10T00:00:00"})
    assert response.json() == {"transitioned": 1}
    listed = client.get("/api/fees/student-fees/get-all", params={"status": "OVERDUE"})
    assert len(listed.json()) == 1


def test_scholarship_approval_after_payment_over_http(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])
    pending = client.post(f"/api/fees/student-fees/{ledger['id']}/scholarships", json={
        "name": "Merit", "scholarship_amount": "2000",
    }).json()
    client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "1000", "payment_method": "CASH",
    })
    scholarship_id = pending["scholarships"][0]["id"]

    refused = client.post(f"/api/fees/student-fees/scholarships/{scholarship_id}/approve", json={"decided_by": "trustee"})
    assert refused.status_code == 400
    assert refused.json()["field"] == "reapproved"

    approved = client.post(f"/api/fees/student-fees/scholarships/{scholarship_id}/approve", json={
        "decided_by": "trustee", "reapproved": True,
    })
    assert approved.status_code == 200, approved.text
    assert float(approved.json()["final_amount"]) == 8000


def test_reports_endpoints(client):
    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])
    client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "2500", "payment_method": "CASH",
    })

    dues = client.get("/api/fees/reports/dues", params={"institution_id": INSTITUTION})
    assert dues.status_code == 200, dues.text
    body = dues.json()
    assert float(body["summary"]["total_dues"]) == 7500
    assert float(body["by_class"]["class-5"]["total_dues"]) == 7500
    assert body["details"][0]["status"] == "PARTIAL"

    summary = client.get("/api/fees/reports/collection-summary", params={"institution_id": INSTITUTION})
    assert summary.status_code == 200, summary.text
    assert float(summary.json()["by_payment_method"]["CASH"]) == 2500

    bad = client.get("/api/fees/reports/collection-summary", params={"institution_id": INSTITUTION, "group_by": "week"})
    assert bad.status_code == 422
    assert bad.json()["field"] == "group_by"


def test_finance_settings_endpoints(client):
    settings = client.get(f"/api/fees/settings/get-by/{INSTITUTION}")
    assert settings.status_code == 200
    assert settings.json()["receipt_prefix"] == "RCP"

    updated = client.put(f"/api/fees/settings/put-by/{INSTITUTION}", json={"receipt_prefix": "FEE", "updated_by": "bursar"})
    assert updated.status_code == 200, updated.text

    structure = create_structure(client)
    ledger = create_ledger(client, structure["id"])
    paid = client.post("/api/fees/payments/create", json={
        "student_fee_id": ledger["id"], "amount": "100", "payment_method": "CASH",
    })
    assert paid.json()["payment"]["receipt_number"] == "FEE000001"

    blank = client.put(f"/api/fees/settings/put-by/{INSTITUTION}", json={"receipt_prefix": " "})
    assert blank.status_code == 422
