from datetime import timedelta

from pymongo.errors import PyMongoError

import cart_tracking
from conftest import make_account, make_user
from database import utcnow


def add_line(db, user, product_id, price, quantity=1, hours_ago=1, **extra):
    db["carts"].insert_one({
        "userId": str(user["_id"]),
        "productId": product_id,
        "name": f"Item {product_id}",
        "price": price,
        "quantity": quantity,
        "category": extra.get("category", "FPS"),
        "game": extra.get("game", "Valorant"),
        "addedAt": utcnow() - timedelta(hours=hours_ago),
    })


def test_cart_detail_totals(client, db, admin_headers, customer):
    add_line(db, customer, "a", 100, quantity=2, hours_ago=5)
    add_line(db, customer, "b", 50, hours_ago=1, category="MOBA", game="LoL")

    response = client.get(f"/api/admin/cart-tracking/cart/{customer['_id']}", headers=admin_headers)
    stats = response.json()["data"]["stats"]
    assert stats["totalItems"] == 3
    assert stats["totalValue"] == 250
    assert stats["categories"] == ["FPS", "MOBA"]
    assert stats["games"] == ["Valorant", "LoL"]
    assert [i["productId"] for i in response.json()["data"]["items"]] == ["a", "b"]


def test_empty_cart_detail(client, admin_headers, customer):
    stats = client.get(f"/api/admin/cart-tracking/cart/{customer['_id']}", headers=admin_headers).json()["data"]["stats"]
    assert stats == {"totalItems": 0, "totalValue": 0, "categories": [], "games": [], "oldestItem": None}


def test_removing_an_item_is_idempotent(client, db, admin_headers, customer):
    add_line(db, customer, "a", 100)
    url = f"/api/admin/cart-tracking/cart/{customer['_id']}"
    first = client.delete(url, headers=admin_headers, params={"productId": "a"})
    second = client.delete(url, headers=admin_headers, params={"productId": "a"})
    assert first.status_code == second.status_code == 200
    assert second.json()["success"] is True
    assert db["carts"].count_documents({}) == 0


def test_user_list_filters_and_sorts(client, db, admin_headers, admin, customer):
    other = make_user(db, "burak@example.com", name="Burak")
    add_line(db, customer, "a", 300)
    add_line(db, other, "b", 40, quantity=3)

    rows = client.get("/api/admin/cart-tracking/users", headers=admin_headers,
                      params={"hasCart": "true", "sortBy": "cartValue", "order": "desc"}).json()
    assert rows["total"] == 2
    assert [r["email"] for r in rows["data"]] == ["ayse@example.com", "burak@example.com"]
    assert rows["data"][1]["cartItemCount"] == 3
    assert rows["data"][1]["cartValue"] == 120

    everyone = client.get("/api/admin/cart-tracking/users", headers=admin_headers,
                          params={"sortBy": "name", "order": "asc"}).json()
    assert [r["name"] for r in everyone["data"]] == ["Ayşe Yılmaz", "Burak", "Site Admin"]
    assert all("hashedPassword" not in r for r in everyone["data"])


def test_user_list_degrades_when_storage_fails(client, admin_headers, monkeypatch):
    def broken(db):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(cart_tracking, "cart_summaries", broken)
    body = client.get("/api/admin/cart-tracking/users", headers=admin_headers).json()
    assert body["success"] is False
    assert body["data"] == []
    assert body["total"] == 0


def test_send_notification_validation(client, admin_headers, customer):
    url = "/api/admin/cart-tracking/notifications/send"
    missing = client.post(url, headers=admin_headers, json={"userId": str(customer["_id"]), "title": "  "})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing parameters"

    unknown = client.post(url, headers=admin_headers,
                          json={"userId": "64b000000000000000000000", "title": "Hey", "message": "Come back"})
    assert unknown.status_code == 404


def test_send_notification_records_history(client, admin_headers, customer):
    sent = client.post("/api/admin/cart-tracking/notifications/send", headers=admin_headers, json={
        "userId": str(customer["_id"]), "title": "Sepetiniz sizi bekliyor", "message": "Ürünler tükenmeden alın",
    })
    assert sent.status_code == 200
    assert sent.json()["data"]["status"] == "sent"

    history = client.get("/api/admin/cart-tracking/notifications", headers=admin_headers,
                         params={"userId": str(customer["_id"])}).json()
    assert history["total"] == 1
    assert history["data"][0]["title"] == "Sepetiniz sizi bekliyor"
    assert history["data"][0]["type"] == "cart_reminder"


def test_stats_summarise_carts_and_read_stored_rates(client, db, admin_headers, admin, customer):
    other = make_user(db, "burak@example.com", name="Burak")
    add_line(db, customer, "a", 100, quantity=2, hours_ago=2)
    add_line(db, other, "b", 50, hours_ago=48, category="MOBA", game="LoL")
    db["orders"].insert_one({"orderId": "HD1", "status": "completed", "updatedAt": utcnow()})

    client.put("/api/admin/settings", headers=admin_headers,
               json={"notificationRates": {"deliveryRate": 97.5, "openRate": 40, "clickRate": 12}})

    data = client.get("/api/admin/cart-tracking/stats", headers=admin_headers).json()["data"]
    assert data["totalUsers"] == 3
    assert data["usersWithCart"] == 2
    assert data["totalCartValue"] == 250
    assert data["averageCartValue"] == 125
    assert data["abandonedCarts"] == 1
    assert data["conversionRate"] == 50.0
    assert data["timeStats"]["last24h"]["newCarts"] == 1
    assert data["timeStats"]["last7d"]["newCarts"] == 2
    assert data["categoryStats"][0] == {"category": "FPS", "cartCount": 2, "totalValue": 200}
    assert data["notificationStats"]["deliveryRate"] == 97.5
    assert data["notificationStats"]["openRate"] == 40


def test_customer_cart_merges_repeated_adds(client, db, user_headers):
    account = make_account(db, price=80)
    product_id = str(account["_id"])
    client.post("/api/cart", headers=user_headers, json={"productId": product_id})
    body = client.post("/api/cart", headers=user_headers, json={"productId": product_id, "quantity": 2}).json()
    assert len(body["data"]["items"]) == 1
    assert body["data"]["stats"]["totalItems"] == 3
    assert body["data"]["stats"]["totalValue"] == 240

    client.delete("/api/cart", headers=user_headers, params={"productId": product_id})
    assert client.get("/api/cart", headers=user_headers).json()["data"]["items"] == []


def test_sold_accounts_cannot_be_added_to_cart(client, db, user_headers):
    account = make_account(db, status="sold")
    response = client.post("/api/cart", headers=user_headers, json={"productId": str(account["_id"])})
    assert response.status_code == 400


def test_cart_tracking_requires_admin(client, user_headers):
    assert client.get("/api/admin/cart-tracking/stats", headers=user_headers).status_code == 403
