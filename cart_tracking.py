"""
Server-side shopping carts and the admin cart-tracking dashboard.

Every cart line is its own document in ``carts`` keyed by ``userId`` and
``productId``. The admin views aggregate those lines per user; notifications
sent from the dashboard are recorded in ``notifications``.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from auth import get_admin_user, get_current_active_user
from content import get_settings
from database import Database, get_db, get_document, get_document_or_404, serialize_document, utcnow
from schemas import CartItem, Notification

logger = structlog.get_logger()

router = APIRouter(prefix="/api/cart", tags=["cart"])
admin_router = APIRouter(prefix="/api/admin/cart-tracking", tags=["admin"])

SortKey = Literal['lastActivity', 'cartValue', 'cartItemCount', 'name']


class CartAddIn(BaseModel):
    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(1, ge=1)


class NotificationIn(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    title: Optional[str] = None
    message: Optional[str] = None
    type: str = 'cart_reminder'


def cart_items(db: Database, user_id: str) -> List[dict]:
    return list(db["carts"].find({"userId": user_id}).sort("addedAt", 1))


def cart_stats(items: List[dict]) -> dict:
    """Totals for one cart; categories and games keep first-seen order."""
    added = [i["addedAt"] for i in items if i.get("addedAt")]
    return {
        "totalItems": sum(i.get("quantity", 1) for i in items),
        "totalValue": round(sum(i.get("price", 0) * i.get("quantity", 1) for i in items), 2),
        "categories": list(dict.fromkeys(i["category"] for i in items if i.get("category"))),
        "games": list(dict.fromkeys(i["game"] for i in items if i.get("game"))),
        "oldestItem": min(added) if added else None,
    }


def cart_summaries(db: Database) -> Dict[str, dict]:
    summaries: Dict[str, dict] = {}
    for line in db["carts"].find({}, {"userId": 1, "price": 1, "quantity": 1, "addedAt": 1}):
        s = summaries.setdefault(line["userId"], {"itemCount": 0, "value": 0.0, "lastAdded": None})
        quantity = line.get("quantity", 1)
        s["itemCount"] += quantity
        s["value"] += line.get("price", 0) * quantity
        added = line.get("addedAt")
        if added and (s["lastAdded"] is None or added > s["lastAdded"]):
            s["lastAdded"] = added
    return summaries


def last_activity(user: dict, last_added: Optional[datetime]) -> Optional[datetime]:
    seen = [t for t in (user.get("lastLogin"), last_added) if t]
    return max(seen) if seen else user.get("createdAt")


def _sort_value(row: dict, sort_by: str):
    value = row.get(sort_by)
    if sort_by == "name":
        return (value or "").lower()
    if sort_by == "lastActivity":
        return value or datetime.min
    return value or 0


# Customer cart
@router.get("")
def get_my_cart(db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    items = cart_items(db, str(current_user["_id"]))
    return {"success": True, "data": {"items": [serialize_document(i) for i in items], "stats": cart_stats(items)}}


@router.post("")
def add_to_cart(body: CartAddIn, db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    user_id = str(current_user["_id"])
    account = get_document_or_404(db, "accounts", body.product_id, "Account not found", label="product id")
    if account.get("status") != "available":
        raise HTTPException(status_code=400, detail="Account is not available")

    existing = db["carts"].find_one({"userId": user_id, "productId": body.product_id})
    if existing:
        db["carts"].update_one({"_id": existing["_id"]},
                               {"$inc": {"quantity": body.quantity}, "$set": {"price": account["price"]}})
    else:
        line = CartItem(
            user_id=user_id,
            product_id=body.product_id,
            name=account["title"],
            price=account["price"],
            quantity=body.quantity,
            category=account.get("category", ""),
            game=account.get("game", ""),
            rank=account.get("rank", ""),
            level=account.get("level", ""),
            image=(account.get("images") or [None])[0],
            added_at=utcnow(),
        )
        db["carts"].insert_one(line.model_dump(by_alias=True))

    items = cart_items(db, user_id)
    return {"success": True, "message": "Added to cart",
            "data": {"items": [serialize_document(i) for i in items], "stats": cart_stats(items)}}


@router.delete("")
def remove_from_cart(product_id: str = Query(..., alias="productId"), db: Database = Depends(get_db),
                     current_user: dict = Depends(get_current_active_user)):
    db["carts"].delete_one({"userId": str(current_user["_id"]), "productId": product_id})
    return {"success": True, "message": "Removed from cart"}


# Admin tracking
@admin_router.get("/users")
def tracked_users(
    has_cart: bool = Query(False, alias="hasCart"),
    sort_by: SortKey = Query('lastActivity', alias="sortBy"),
    order: Literal['asc', 'desc'] = 'desc',
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    try:
        users = list(db["users"].find({}, {"hashedPassword": 0}))
        summaries = cart_summaries(db)
    except PyMongoError as e:
        logger.error("Failed to load cart-tracking users", error=str(e))
        return {"success": False, "data": [], "total": 0, "error": "Users could not be loaded"}

    rows = []
    for user in users:
        user_id = str(user["_id"])
        summary = summaries.get(user_id, {"itemCount": 0, "value": 0.0, "lastAdded": None})
        rows.append({
            "id": user_id,
            "name": user.get("name", ""),
            "email": user.get("email", ""),
            "phone": user.get("phone") or "",
            "lastActivity": last_activity(user, summary["lastAdded"]),
            "cartItemCount": summary["itemCount"],
            "cartValue": round(summary["value"], 2),
            "registeredAt": user.get("createdAt"),
        })
    if has_cart:
        rows = [r for r in rows if r["cartItemCount"] > 0]
    rows.sort(key=lambda r: _sort_value(r, sort_by), reverse=order == "desc")
    return {"success": True, "data": rows, "total": len(rows), "timestamp": utcnow()}


@admin_router.get("/cart/{user_id}")
def tracked_cart(user_id: str, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    items = cart_items(db, user_id)
    return {
        "success": True,
        "data": {"userId": user_id, "items": [serialize_document(i) for i in items], "stats": cart_stats(items)},
        "timestamp": utcnow(),
    }


@admin_router.delete("/cart/{user_id}")
def remove_tracked_item(user_id: str, product_id: str = Query(..., alias="productId", min_length=1),
                        db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    result = db["carts"].delete_one({"userId": user_id, "productId": product_id})
    logger.info("Cart item removed by admin", user_id=user_id, product_id=product_id,
                removed=result.deleted_count, admin=admin.get("email"))
    return {"success": True, "message": "Item removed from cart", "timestamp": utcnow()}


@admin_router.post("/notifications/send")
def send_notification(body: NotificationIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    if not body.user_id or not (body.title or "").strip() or not (body.message or "").strip():
        raise HTTPException(status_code=400, detail="Missing parameters")
    if get_document(db, "users", body.user_id, label="user id") is None:
        raise HTTPException(status_code=404, detail="User not found")

    notification = Notification(user_id=body.user_id, title=body.title.strip(), message=body.message.strip(),
                                type=body.type, sent_at=utcnow())
    try:
        result = db["notifications"].insert_one(notification.model_dump(by_alias=True))
    except PyMongoError as e:
        logger.error("Failed to record notification", user_id=body.user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Notification could not be sent")

    logger.info("Notification sent", user_id=body.user_id, type=body.type)
    return {
        "success": True,
        "message": "Notification sent",
        "data": {"notificationId": str(result.inserted_id), "status": notification.status,
                 "sentAt": notification.sent_at, "deliveryMethods": notification.delivery_methods},
    }


@admin_router.get("/notifications")
def notification_history(user_id: Optional[str] = Query(None, alias="userId"), limit: int = Query(50, ge=1, le=500),
                         db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    query = {"userId": user_id} if user_id else {}
    history = list(db["notifications"].find(query).sort("sentAt", -1).limit(limit))
    return {"success": True, "data": [serialize_document(n) for n in history], "total": len(history)}


@admin_router.get("/stats")
def tracking_stats(db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    now = utcnow()
    summaries = cart_summaries(db)
    total_value = sum(s["value"] for s in summaries.values())
    with_cart = len(summaries)
    completed = db["orders"].count_documents({"status": "completed"})
    abandoned = sum(1 for s in summaries.values() if s["lastAdded"] and s["lastAdded"] < now - timedelta(hours=24))

    windows = {}
    for label, delta in (("last24h", timedelta(hours=24)), ("last7d", timedelta(days=7)), ("last30d", timedelta(days=30))):
        since = now - delta
        windows[label] = {
            "newCarts": len(db["carts"].distinct("userId", {"addedAt": {"$gte": since}})),
            "completedOrders": db["orders"].count_documents({"status": "completed", "updatedAt": {"$gte": since}}),
            "notificationsSent": db["notifications"].count_documents({"sentAt": {"$gte": since}}),
        }

    by_category: Dict[str, dict] = {}
    by_game: Dict[str, dict] = {}
    for line in db["carts"].find({}, {"category": 1, "game": 1, "price": 1, "quantity": 1}):
        quantity = line.get("quantity", 1)
        value = line.get("price", 0) * quantity
        for key, bucket in (("category", by_category), ("game", by_game)):
            name = line.get(key) or "Other"
            entry = bucket.setdefault(name, {key: name, "cartCount": 0, "totalValue": 0.0})
            entry["cartCount"] += quantity
            entry["totalValue"] = round(entry["totalValue"] + value, 2)

    rates = get_settings(db).notification_rates
    return {
        "success": True,
        "data": {
            "totalUsers": db["users"].count_documents({}),
            "usersWithCart": with_cart,
            "totalCartValue": round(total_value, 2),
            "averageCartValue": round(total_value / with_cart, 2) if with_cart else 0,
            "abandonedCarts": abandoned,
            "completedOrders": completed,
            "conversionRate": round(completed / with_cart * 100, 1) if with_cart else 0,
            "timeStats": windows,
            "categoryStats": sorted(by_category.values(), key=lambda e: e["totalValue"], reverse=True),
            "gameStats": sorted(by_game.values(), key=lambda e: e["totalValue"], reverse=True),
            "notificationStats": {"totalSent": db["notifications"].count_documents({}),
                                  **rates.model_dump(by_alias=True)},
        },
        "generatedAt": now,
    }
