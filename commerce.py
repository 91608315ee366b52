import random
import re
import string
import time
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr, Field

import config
from activity import create_log
from auth import get_admin_user, get_current_active_user, get_optional_user
from database import (Database, create_document, get_db, get_document, get_document_or_404, paginate,
                      serialize_document, update_document)
from schemas import Order as OrderSchema, OrderAccount, OrderParty, OrderStatus, PaymentStatus

logger = structlog.get_logger()

router = APIRouter(tags=["orders"])
admin_router = APIRouter(prefix="/api/admin/orders", tags=["admin"])

HOUSE_SELLER = {"_id": "admin", "name": "HesapDurağı", "email": "destek@hesapduragi.com"}


class CheckoutItem(BaseModel):
    id: str = Field(..., alias="_id", min_length=1)
    title: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)


class CustomerInfo(BaseModel):
    email: EmailStr
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    phone: str = ""


class CheckoutIn(BaseModel):
    items: List[CheckoutItem]
    payment_method: str = Field("manual", alias="paymentMethod")
    customer_info: CustomerInfo = Field(..., alias="customerInfo")


class OrderStatusIn(BaseModel):
    order_id: str = Field(..., alias="orderId", min_length=1)
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = Field(None, alias="paymentStatus")
    notes: Optional[str] = None


class ManualOrderIn(BaseModel):
    buyer_id: str = Field(..., alias="buyerId", min_length=1)
    account_id: str = Field(..., alias="accountId", min_length=1)
    amount: float = Field(..., gt=0)
    payment_method: str = Field("manual", alias="paymentMethod")
    status: OrderStatus = 'pending'
    payment_status: PaymentStatus = Field('pending', alias="paymentStatus")
    notes: Optional[str] = None


def generate_order_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"HD{int(time.time() * 1000)}{suffix}"


def commission_for(amount: float) -> float:
    return round(amount * config.ORDER_COMMISSION_RATE, 2)


def order_stats(db: Database) -> dict:
    orders = db["orders"]
    completed = list(orders.find({"status": "completed"}, {"amount": 1, "commission": 1}))
    return {
        "total": orders.count_documents({}),
        "completed": len(completed),
        "processing": orders.count_documents({"status": "processing"}),
        "pending": orders.count_documents({"status": "pending"}),
        "cancelled": orders.count_documents({"status": "cancelled"}),
        "totalRevenue": sum(o.get("amount", 0) for o in completed),
        "totalCommission": sum(o.get("commission", 0) for o in completed),
    }


# Admin
@admin_router.get("")
def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    status: Optional[str] = None,
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if status and status != "all":
        query["status"] = status
    if payment_status and payment_status != "all":
        query["paymentStatus"] = payment_status
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"orderId": pattern}, {"buyer.name": pattern}, {"buyer.email": pattern},
                        {"account.title": pattern}]

    total = db["orders"].count_documents(query)
    orders = db["orders"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {
        "success": True,
        "orders": [serialize_document(o) for o in orders],
        "stats": order_stats(db),
        "pagination": paginate(page, limit, total),
    }


@admin_router.put("")
def admin_update_order(body: OrderStatusIn, request: Request, db: Database = Depends(get_db),
                       admin: dict = Depends(get_admin_user)):
    existing = get_document_or_404(db, "orders", body.order_id, "Order not found", label="order id")
    updates = {"status": body.status}
    if body.payment_status:
        updates["paymentStatus"] = body.payment_status
    if body.notes:
        updates["notes"] = body.notes

    order = update_document(db, "orders", existing["_id"], updates)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    create_log(db, "info", "admin", f"Order status updated: {order['orderId']} -> {body.status}",
               user_id=str(admin["_id"]), user_name=admin.get("name"), request=request,
               details={"orderId": order["orderId"], "oldStatus": existing.get("status"),
                        "newStatus": body.status, "notes": body.notes})
    return {"success": True, "message": "Order status updated", "order": serialize_document(order)}


@admin_router.post("", status_code=201)
def admin_create_order(body: ManualOrderIn, request: Request, db: Database = Depends(get_db),
                       admin: dict = Depends(get_admin_user)):
    buyer = get_document_or_404(db, "users", body.buyer_id, "Buyer not found", label="buyer id")
    account = get_document_or_404(db, "accounts", body.account_id, "Account not found", label="account id")
    if account.get("status") != "available":
        raise HTTPException(status_code=400, detail="Account is not available")

    order = OrderSchema(
        order_id=generate_order_id(),
        buyer=OrderParty(_id=str(buyer["_id"]), name=buyer["name"], email=buyer["email"]),
        seller=OrderParty(**HOUSE_SELLER),
        account=OrderAccount(_id=str(account["_id"]), title=account["title"], game=account["game"]),
        amount=body.amount,
        commission=0,
        status=body.status,
        payment_status=body.payment_status,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    order_id = create_document(db, "orders", order)
    update_document(db, "accounts", account["_id"], {"status": "sold" if body.status == "completed" else "pending"})
    create_log(db, "info", "admin", f"Manual order created: {order.order_id}", user_id=str(admin["_id"]),
               user_name=admin.get("name"), request=request,
               details={"orderId": order.order_id, "buyer": buyer["email"], "amount": body.amount})
    return {"success": True, "message": "Order created", "order": serialize_document(get_document(db, "orders", order_id))}


# Customer
@router.get("/api/orders")
def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_active_user),
):
    query: dict = {"buyer._id": str(current_user["_id"])}
    if status and status != "all":
        query["status"] = status
    total = db["orders"].count_documents(query)
    orders = db["orders"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {"success": True, "orders": [serialize_document(o) for o in orders], "pagination": paginate(page, limit, total)}


@router.post("/api/checkout")
def checkout(body: CheckoutIn, request: Request, db: Database = Depends(get_db),
             buyer: Optional[dict] = Depends(get_optional_user)):
    if not body.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    # every line is checked before anything is written
    accounts = []
    seen = set()
    for item in body.items:
        if item.id in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate item: {item.title}")
        seen.add(item.id)
        account = get_document(db, "accounts", item.id, label="account id")
        if account is None:
            raise HTTPException(status_code=404, detail=f"Account not found: {item.title}")
        if account.get("status") != "available":
            raise HTTPException(status_code=400, detail=f"Account is no longer for sale: {item.title}")
        if account.get("price") != item.price:
            raise HTTPException(status_code=400, detail=f"Price has changed: {item.title}")
        accounts.append(account)

    customer = body.customer_info
    if buyer:
        party = OrderParty(_id=str(buyer["_id"]), name=buyer["name"], email=buyer["email"])
    else:
        party = OrderParty(_id="guest", name=f"{customer.first_name} {customer.last_name}", email=customer.email)

    created = []
    total_amount = 0.0
    for account in accounts:
        order = OrderSchema(
            order_id=generate_order_id(),
            buyer=party,
            seller=OrderParty(**HOUSE_SELLER),
            account=OrderAccount(_id=str(account["_id"]), title=account["title"], game=account["game"]),
            amount=account["price"],
            commission=commission_for(account["price"]),
            payment_method=body.payment_method,
            notes=f"Customer: {customer.first_name} {customer.last_name}, Phone: {customer.phone}",
        )
        create_document(db, "orders", order)
        update_document(db, "accounts", account["_id"], {"status": "pending"})
        created.append({"orderId": order.order_id, "amount": order.amount,
                        "account": order.account.model_dump(by_alias=True)})
        total_amount += order.amount

    if buyer:
        purchased = [str(a["_id"]) for a in accounts]
        db["carts"].delete_many({"userId": str(buyer["_id"]), "productId": {"$in": purchased}})

    create_log(db, "info", "payment", f"Checkout completed: {len(created)} order(s), {total_amount:.2f} TRY",
               user_id=party.id, user_name=party.name, request=request,
               details={"orders": [o["orderId"] for o in created], "paymentMethod": body.payment_method,
                        "customerEmail": customer.email})
    logger.info("Checkout completed", orders=len(created), total=total_amount, guest=buyer is None)
    return {
        "success": True,
        "message": "Order received",
        "data": {"orders": created, "totalAmount": total_amount, "customerEmail": customer.email},
    }


@router.post("/api/accounts/{account_id}/purchase")
def purchase_with_balance(account_id: str, request: Request, db: Database = Depends(get_db),
                          buyer: dict = Depends(get_current_active_user)):
    """Buy one unit of an account from the buyer's wallet; the order is completed and paid immediately."""
    account = get_document_or_404(db, "accounts", account_id, "Account not found", label="account id")
    if account.get("status") != "available":
        raise HTTPException(status_code=400, detail="Account is not available")
    if account.get("stock", 0) <= 0:
        raise HTTPException(status_code=400, detail="Account is out of stock")
    price = account["price"]
    if buyer.get("balance", 0) < price:
        raise HTTPException(status_code=400, detail="Insufficient balance")

    # stock and balance only move when their guards still hold
    reserved = db["accounts"].update_one({"_id": account["_id"], "status": "available", "stock": {"$gt": 0}},
                                         {"$inc": {"stock": -1}})
    if not reserved.modified_count:
        raise HTTPException(status_code=400, detail="Account is not available")
    charged = db["users"].update_one({"_id": buyer["_id"], "balance": {"$gte": price}},
                                     {"$inc": {"balance": -price, "totalPurchases": 1}})
    if not charged.modified_count:
        db["accounts"].update_one({"_id": account["_id"]}, {"$inc": {"stock": 1}})
        raise HTTPException(status_code=400, detail="Insufficient balance")
    db["accounts"].update_one({"_id": account["_id"], "stock": {"$lte": 0}}, {"$set": {"status": "sold"}})

    order = OrderSchema(
        order_id=generate_order_id(),
        buyer=OrderParty(_id=str(buyer["_id"]), name=buyer["name"], email=buyer["email"]),
        seller=OrderParty(**HOUSE_SELLER),
        account=OrderAccount(_id=str(account["_id"]), title=account["title"], game=account["game"]),
        amount=price,
        commission=commission_for(price),
        status="completed",
        payment_status="paid",
        payment_method="balance",
    )
    order_id = create_document(db, "orders", order)
    create_log(db, "info", "payment", f"Balance purchase: {order.order_id}", user_id=str(buyer["_id"]),
               user_name=buyer.get("name"), request=request,
               details={"orderId": order.order_id, "accountId": str(account["_id"]), "amount": price})
    logger.info("Balance purchase completed", order_id=order.order_id, amount=price)
    return {
        "success": True,
        "message": "Purchase completed",
        "order": serialize_document(get_document(db, "orders", order_id)),
        "balance": db["users"].find_one({"_id": buyer["_id"]}).get("balance", 0),
    }
