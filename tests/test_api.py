import pytest

ADDRESS = {
    "full_name": "Asha Rao",
    "address": "12 MG Road",
    "city": "Pune",
    "state": "MH",
    "zip_code": "411001",
    "phone": "9999999999",
}


@pytest.fixture
def patient(make_user):
    return make_user("patient")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


def test_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/test").json()["database"] == "connected"


def test_register_login_and_me(client):
    res = client.post("/api/auth/register", json={
        "name": "Asha",
        "email": "asha@medshop.in",
        "password": "secret123",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["data"]["role"] == "patient"

    dup = client.post("/api/auth/register", json={"name": "A", "email": "asha@medshop.in", "password": "secret123"})
    assert dup.status_code == 400
    assert dup.json() == {"success": False, "message": "User already exists"}

    bad = client.post("/api/auth/login", json={"email": "asha@medshop.in", "password": "wrong-pass"})
    assert bad.status_code == 401

    token = client.post("/api/auth/login", json={"email": "asha@medshop.in", "password": "secret123"}).json()["data"]["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["email"] == "asha@medshop.in"


def test_register_cannot_claim_admin(client):
    res = client.post("/api/auth/register", json={
        "name": "Eve", "email": "eve@medshop.in", "password": "secret123", "role": "admin",
    })
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_unauthenticated_calls_rejected(client):
    assert client.get("/api/cart").status_code == 401
    res = client.get("/api/orders", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_medicine_endpoints(client, admin, patient, auth_headers):
    payload = {"name": "Ibuprofen", "price": 45.0, "stock": 3, "category": "Pain Relief"}
    assert client.post("/api/medicines", json=payload, headers=auth_headers(patient)).status_code == 403

    created = client.post("/api/medicines", json=payload, headers=auth_headers(admin))
    assert created.status_code == 201
    med_id = created.json()["data"]["id"]

    assert client.get(f"/api/medicines/{med_id}").json()["data"]["name"] == "Ibuprofen"
    assert client.get("/api/medicines", params={"category": "Pain Relief"}).json()["count"] == 1
    assert client.get("/api/medicines/64b7f0c2a1b2c3d4e5f60718").status_code == 404


def test_cart_to_order_flow(client, patient, make_medicine, auth_headers, stock_of):
    headers = auth_headers(patient)
    med = make_medicine(price=100.0, discount_price=80.0, stock=5)

    res = client.post("/api/cart", json={"medicine_id": str(med["_id"]), "quantity": 3}, headers=headers)
    assert res.status_code == 201
    cart = res.json()["data"]
    assert cart["total_amount"] == 240.0

    item_id = cart["items"][0]["item_id"]
    bad = client.put(f"/api/cart/{item_id}", json={"quantity": 0}, headers=headers)
    assert bad.status_code == 400

    res = client.post("/api/orders", json={"shipping_address": ADDRESS, "payment_method": "upi"}, headers=headers)
    assert res.status_code == 201
    order = res.json()["data"]
    assert order["subtotal"] == 240.0
    assert order["shipping_fee"] == 40.0
    assert order["tax"] == 12.0
    assert order["total_amount"] == 292.0
    assert order["user"]["name"] == "Test User"
    assert order["user"]["id"] == str(patient["_id"])
    assert stock_of(med) == 2
    assert client.get("/api/cart", headers=headers).json()["data"]["items"] == []

    listed = client.get("/api/orders", headers=headers).json()
    assert listed["count"] == 1

    res = client.patch(f"/api/orders/{order['id']}", headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["order_status"] == "cancelled"
    assert stock_of(med) == 5

    again = client.patch(f"/api/orders/{order['id']}", headers=headers)
    assert again.status_code == 400


def test_order_errors(client, patient, make_user, admin, make_medicine, auth_headers):
    med = make_medicine(name="Azithromycin", stock=1)
    headers = auth_headers(patient)

    empty = client.post("/api/orders", json={"shipping_address": ADDRESS, "payment_method": "card"}, headers=headers)
    assert empty.status_code == 400
    assert empty.json()["message"] == "Cart is empty"

    short = client.post("/api/orders", json={
        "shipping_address": ADDRESS,
        "payment_method": "card",
        "cart_items": [{"medicine_id": str(med["_id"]), "quantity": 2}],
    }, headers=headers)
    assert short.status_code == 400
    assert short.json()["message"] == "Insufficient stock for Azithromycin"

    missing = client.post("/api/orders", json={
        "shipping_address": ADDRESS,
        "payment_method": "card",
        "cart_items": [{"medicine_id": "64b7f0c2a1b2c3d4e5f60718", "quantity": 1}],
    }, headers=headers)
    assert missing.status_code == 404

    bad_method = client.post("/api/orders", json={"shipping_address": ADDRESS, "payment_method": "bitcoin"}, headers=headers)
    assert bad_method.status_code == 400

    order = client.post("/api/orders", json={
        "shipping_address": ADDRESS,
        "payment_method": "card",
        "cart_items": [{"medicine_id": str(med["_id"]), "quantity": 1}],
    }, headers=headers).json()["data"]

    other = auth_headers(make_user("patient"))
    assert client.patch(f"/api/orders/{order['id']}", headers=other).status_code == 403
    assert client.get(f"/api/orders/{order['id']}", headers=other).status_code == 403

    assert client.put(f"/api/orders/{order['id']}", json={"order_status": "confirmed"}, headers=headers).status_code == 403
    unknown = client.put(f"/api/orders/{order['id']}", json={"order_status": "teleported"}, headers=auth_headers(admin))
    assert unknown.status_code == 400
    shipped = client.put(
        f"/api/orders/{order['id']}",
        json={"order_status": "shipped", "tracking_number": "TRK9"},
        headers=auth_headers(admin),
    )
    assert shipped.json()["data"]["tracking_number"] == "TRK9"

    all_orders = client.get("/api/orders/all", params={"status": "shipped"}, headers=auth_headers(admin)).json()
    assert all_orders["total"] == 1
    assert all_orders["pages"] == 1


def test_prescription_flow(client, patient, make_user, auth_headers, settings):
    patient_headers = auth_headers(patient)
    pharmacist_headers = auth_headers(make_user("pharmacist", name="Pharmacist Rao"))

    res = client.post(
        "/api/prescriptions/requests",
        data={"symptoms": "Rash", "description": "Red patches on arm"},
        files=[("images", ("rash.png", b"\x89PNG\r\n\x1a\n", "image/png"))],
        headers=patient_headers,
    )
    assert res.status_code == 201
    request = res.json()["data"]
    assert len(request["images"]) == 1
    assert request["images"][0].startswith("/uploads/")
    assert request["patient"]["name"] == "Test User"

    too_many = client.post(
        "/api/prescriptions/requests",
        data={"symptoms": "Rash", "description": "Again"},
        files=[("images", (f"r{i}.png", b"x", "image/png")) for i in range(settings.max_upload_files + 1)],
        headers=patient_headers,
    )
    assert too_many.status_code == 400

    not_image = client.post(
        "/api/prescriptions/requests",
        data={"symptoms": "Rash", "description": "Again"},
        files=[("images", ("notes.txt", b"hello", "text/plain"))],
        headers=patient_headers,
    )
    assert not_image.status_code == 400

    assert client.post(
        "/api/prescriptions/requests", data={"symptoms": "Rash", "description": "x"}, headers=pharmacist_headers
    ).status_code == 403

    assert client.get("/api/prescriptions/patient/requests", headers=patient_headers).json()["count"] == 1
    queue = client.get("/api/prescriptions/pharmacist/requests", headers=pharmacist_headers).json()
    assert queue["total"] == 1

    empty = client.put(
        f"/api/prescriptions/requests/{request['id']}",
        json={"pharmacist_notes": "Allergy", "suggested_medicines": []},
        headers=pharmacist_headers,
    )
    assert empty.status_code == 400

    answer = {
        "pharmacist_notes": "Contact dermatitis",
        "suggested_medicines": [{"name": "Calamine", "dosage": "Topical", "frequency": "Twice daily", "duration": "7 days"}],
    }
    done = client.put(f"/api/prescriptions/requests/{request['id']}", json=answer, headers=pharmacist_headers)
    assert done.status_code == 200
    assert done.json()["data"]["status"] == "completed"

    again = client.put(f"/api/prescriptions/requests/{request['id']}", json=answer, headers=pharmacist_headers)
    assert again.status_code == 400
    assert again.json()["message"] == "This request has already been completed"

    seen = client.get(f"/api/prescriptions/requests/{request['id']}", headers=patient_headers).json()["data"]
    assert seen["pharmacist_notes"] == "Contact dermatitis"
    assert seen["patient"]["email"] == patient["email"]
    assert seen["responder"]["name"] == "Pharmacist Rao"
