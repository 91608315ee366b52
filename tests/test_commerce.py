from conftest import make_account

CUSTOMER_INFO = {"email": "ayse@example.com", "firstName": "Ayşe", "lastName": "Yılmaz", "phone": "5551112233"}


def checkout_payload(*accounts):
    return {
        "items": [{"_id": str(a["_id"]), "title": a["title"], "price": a["price"], "quantity": 1} for a in accounts],
        "paymentMethod": "bank_transfer",
        "customerInfo": CUSTOMER_INFO,
    }


def test_checkout_creates_orders_and_reserves_accounts(client, db, customer, user_headers):
    first = make_account(db, title="Valorant", price=100)
    second = make_account(db, title="CS2 Prime", price=45.5)
    db["carts"].insert_one({"userId": str(customer["_id"]), "productId": str(first["_id"]), "price": 100})
    db["carts"].insert_one({"userId": str(customer["_id"]), "productId": "something-else", "price": 5})

    response = client.post("/api/checkout", headers=user_headers, json=checkout_payload(first, second))
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["orders"]) == 2
    assert data["totalAmount"] == 145.5
    assert data["customerEmail"] == "ayse@example.com"

    order = db["orders"].find_one({"account._id": str(first["_id"])})
    assert order["commission"] == 10.0
    assert order["status"] == "pending"
    assert order["buyer"]["_id"] == str(customer["_id"])
    assert order["seller"]["_id"] == "admin"
    assert order["orderId"].startswith("HD")

    assert db["accounts"].find_one({"_id": first["_id"]})["status"] == "pending"
    assert [c["productId"] for c in db["carts"].find()] == ["something-else"]
    assert db["logs"].count_documents({"category": "payment"}) == 1


def test_guest_checkout(client, db):
    account = make_account(db)
    response = client.post("/api/checkout", json=checkout_payload(account))
    assert response.status_code == 200
    order = db["orders"].find_one()
    assert order["buyer"] == {"_id": "guest", "name": "Ayşe Yılmaz", "email": "ayse@example.com"}


def test_checkout_rejects_changed_price_without_writing(client, db):
    cheap = make_account(db, title="Cheap", price=10)
    changed = make_account(db, title="Changed", price=100)
    payload = checkout_payload(cheap, changed)
    payload["items"][1]["price"] = 90

    response = client.post("/api/checkout", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Price has changed: Changed"
    assert db["orders"].count_documents({}) == 0
    assert db["accounts"].find_one({"_id": cheap["_id"]})["status"] == "available"


def test_checkout_rejects_unavailable_and_missing_accounts(client, db):
    sold = make_account(db, status="sold")
    assert client.post("/api/checkout", json=checkout_payload(sold)).status_code == 400

    ghost = {"_id": "64b000000000000000000000", "title": "Ghost", "price": 10}
    response = client.post("/api/checkout", json=checkout_payload(ghost))
    assert response.status_code == 404
    assert response.json()["error"] == "Account not found: Ghost"


def test_empty_checkout_is_rejected(client):
    response = client.post("/api/checkout", json={"items": [], "customerInfo": CUSTOMER_INFO})
    assert response.status_code == 400


def test_admin_status_update_writes_audit_log(client, db, admin_headers, user_headers):
    account = make_account(db)
    client.post("/api/checkout", headers=user_headers, json=checkout_payload(account))
    order = db["orders"].find_one()

    response = client.put("/api/admin/orders", headers=admin_headers, json={
        "orderId": str(order["_id"]), "status": "completed", "paymentStatus": "paid", "notes": "Teslim edildi",
    })
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "completed"
    assert response.json()["order"]["paymentStatus"] == "paid"

    log = db["logs"].find_one({"category": "admin"})
    assert log["details"]["oldStatus"] == "pending"
    assert log["details"]["newStatus"] == "completed"

    listing = client.get("/api/admin/orders", headers=admin_headers).json()
    assert listing["stats"]["completed"] == 1
    assert listing["stats"]["totalRevenue"] == 100
    assert listing["stats"]["totalCommission"] == 10.0


def test_admin_manual_order(client, db, admin_headers, customer):
    account = make_account(db)
    response = client.post("/api/admin/orders", headers=admin_headers, json={
        "buyerId": str(customer["_id"]), "accountId": str(account["_id"]), "amount": 100, "status": "completed",
    })
    assert response.status_code == 201
    assert response.json()["order"]["commission"] == 0
    assert db["accounts"].find_one({"_id": account["_id"]})["status"] == "sold"

    again = client.post("/api/admin/orders", headers=admin_headers, json={
        "buyerId": str(customer["_id"]), "accountId": str(account["_id"]), "amount": 100,
    })
    assert again.status_code == 400


def test_users_see_only_their_own_orders(client, db, user_headers):
    mine = make_account(db, title="Mine")
    theirs = make_account(db, title="Theirs")
    client.post("/api/checkout", headers=user_headers, json=checkout_payload(mine))
    client.post("/api/checkout", json=checkout_payload(theirs))

    orders = client.get("/api/orders", headers=user_headers).json()["orders"]
    assert [o["account"]["title"] for o in orders] == ["Mine"]


def test_checkout_rejects_the_same_account_twice(client, db):
    account = make_account(db, title="Tek Hesap")
    payload = checkout_payload(account, account)

    response = client.post("/api/checkout", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Duplicate item: Tek Hesap"
    assert db["orders"].count_documents({}) == 0
    assert db["accounts"].find_one({"_id": account["_id"]})["status"] == "available"


def test_balance_purchase_completes_order_and_debits_wallet(client, db, customer, user_headers):
    db["users"].update_one({"_id": customer["_id"]}, {"$set": {"balance": 250}})
    account = make_account(db, price=100, stock=2)

    response = client.post(f"/api/accounts/{account['_id']}/purchase", headers=user_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["balance"] == 150
    assert body["order"]["status"] == "completed"
    assert body["order"]["paymentStatus"] == "paid"
    assert body["order"]["paymentMethod"] == "balance"
    assert body["order"]["commission"] == 10.0

    stored = db["accounts"].find_one({"_id": account["_id"]})
    assert (stored["stock"], stored["status"]) == (1, "available")
    assert db["users"].find_one({"_id": customer["_id"]})["totalPurchases"] == 1
    assert db["logs"].count_documents({"category": "payment"}) == 1


def test_last_unit_marks_the_account_sold(client, db, customer, user_headers):
    db["users"].update_one({"_id": customer["_id"]}, {"$set": {"balance": 100}})
    account = make_account(db, price=100, stock=1)

    assert client.post(f"/api/accounts/{account['_id']}/purchase", headers=user_headers).status_code == 200
    stored = db["accounts"].find_one({"_id": account["_id"]})
    assert (stored["stock"], stored["status"]) == (0, "sold")
    assert db["users"].find_one({"_id": customer["_id"]})["balance"] == 0

    again = client.post(f"/api/accounts/{account['_id']}/purchase", headers=user_headers)
    assert again.status_code == 400


def test_insufficient_balance_leaves_stock_untouched(client, db, user_headers):
    account = make_account(db, price=100, stock=1)

    response = client.post(f"/api/accounts/{account['_id']}/purchase", headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient balance"
    assert db["accounts"].find_one({"_id": account["_id"]})["stock"] == 1
    assert db["orders"].count_documents({}) == 0


def test_balance_purchase_needs_login_and_existing_account(client, db, user_headers):
    account = make_account(db)
    assert client.post(f"/api/accounts/{account['_id']}/purchase").status_code == 401
    missing = client.post("/api/accounts/64b000000000000000000000/purchase", headers=user_headers)
    assert missing.status_code == 404
