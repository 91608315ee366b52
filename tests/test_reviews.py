from conftest import bearer, make_account, make_user


def bought(client, db, user, account):
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"balance": 1000}})
    response = client.post(f"/api/accounts/{account['_id']}/purchase", headers=bearer(user))
    assert response.status_code == 200
    return response.json()["order"]["_id"]


def review_payload(account, order_id, **overrides):
    payload = {"accountId": str(account["_id"]), "orderId": order_id, "rating": 5, "comment": "Sorunsuz teslim"}
    payload.update(overrides)
    return payload


def test_review_requires_a_completed_purchase(client, db, customer, user_headers):
    account = make_account(db)
    other = make_account(db, title="Başka")
    order_id = bought(client, db, customer, account)

    response = client.post("/api/reviews", headers=user_headers, json=review_payload(other, order_id))
    assert response.status_code == 400
    assert response.json()["error"] == "Only completed purchases can be reviewed"

    created = client.post("/api/reviews", headers=user_headers, json=review_payload(account, order_id))
    assert created.status_code == 201
    assert db["reviews"].find_one()["isApproved"] is False


def test_one_review_per_account(client, db, customer, user_headers):
    account = make_account(db)
    order_id = bought(client, db, customer, account)
    client.post("/api/reviews", headers=user_headers, json=review_payload(account, order_id))

    again = client.post("/api/reviews", headers=user_headers, json=review_payload(account, order_id, rating=1))
    assert again.status_code == 400
    assert again.json()["error"] == "You have already reviewed this account"


def test_review_needs_login_and_valid_rating(client, db, customer, user_headers):
    account = make_account(db)
    order_id = bought(client, db, customer, account)
    assert client.post("/api/reviews", json=review_payload(account, order_id)).status_code == 401
    assert client.post("/api/reviews", headers=user_headers,
                       json=review_payload(account, order_id, rating=6)).status_code == 400


def test_approval_recomputes_the_account_rating(client, db, customer, user_headers, admin_headers):
    account = make_account(db, stock=2)
    other_buyer = make_user(db, "mert@example.com", name="Mert Kaya")
    first = client.post("/api/reviews", headers=user_headers,
                        json=review_payload(account, bought(client, db, customer, account), rating=5)).json()
    second = client.post("/api/reviews", headers=bearer(other_buyer),
                         json=review_payload(account, bought(client, db, other_buyer, account), rating=4,
                                             isAnonymous=True)).json()

    assert client.get("/api/reviews", params={"accountId": str(account["_id"])}).json()["reviewCount"] == 0

    for review in (first["review"], second["review"]):
        response = client.put("/api/admin/reviews", headers=admin_headers,
                              json={"reviewId": review["_id"], "isApproved": True})
        assert response.status_code == 200

    stored = db["accounts"].find_one({"_id": account["_id"]})
    assert (stored["rating"], stored["reviews"]) == (4.5, 2)

    public = client.get("/api/reviews", params={"accountId": str(account["_id"])}).json()
    assert public["averageRating"] == 4.5
    assert sorted(r["userName"] for r in public["reviews"]) == ["Anonim Kullanıcı", "Ayşe Yılmaz"]

    client.delete("/api/admin/reviews", headers=admin_headers, params={"reviewId": second["review"]["_id"]})
    stored = db["accounts"].find_one({"_id": account["_id"]})
    assert (stored["rating"], stored["reviews"]) == (5, 1)


def test_admin_listing_filters_and_stats(client, db, customer, user_headers, admin_headers):
    account = make_account(db)
    review = client.post("/api/reviews", headers=user_headers,
                         json=review_payload(account, bought(client, db, customer, account), rating=3)).json()["review"]

    pending = client.get("/api/admin/reviews", headers=admin_headers, params={"status": "pending"}).json()
    assert [r["_id"] for r in pending["reviews"]] == [review["_id"]]
    assert pending["stats"] == {"total": 1, "pending": 1, "approved": 0, "avgRating": 0}

    client.put("/api/admin/reviews", headers=admin_headers, json={"reviewId": review["_id"], "isApproved": True})
    approved = client.get("/api/admin/reviews", headers=admin_headers, params={"status": "approved"}).json()
    assert approved["stats"]["avgRating"] == 3
    assert client.get("/api/admin/reviews", headers=admin_headers,
                      params={"search": "sorunsuz"}).json()["pagination"]["total"] == 1


def test_update_ratings_rebuilds_every_account(client, db, admin_headers):
    rated = make_account(db, title="Puanlı", rating=1, reviews=9)
    stale = make_account(db, title="Eski", rating=4, reviews=3)
    for score in (4, 5, 5):
        db["reviews"].insert_one({"accountId": str(rated["_id"]), "rating": score, "isApproved": True})
    db["reviews"].insert_one({"accountId": str(rated["_id"]), "rating": 1, "isApproved": False})

    response = client.post("/api/accounts/update-ratings", headers=admin_headers)
    assert response.json() == {"success": True, "totalAccounts": 2, "updatedAccounts": 1}

    assert db["accounts"].find_one({"_id": rated["_id"]})["rating"] == 4.7
    assert db["accounts"].find_one({"_id": rated["_id"]})["reviews"] == 3
    assert db["accounts"].find_one({"_id": stale["_id"]})["rating"] == 0
    assert db["accounts"].find_one({"_id": stale["_id"]})["reviews"] == 0


def test_moderation_is_admin_only(client, user_headers):
    assert client.get("/api/admin/reviews", headers=user_headers).status_code == 403
    assert client.post("/api/accounts/update-ratings", headers=user_headers).status_code == 403
