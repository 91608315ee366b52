"""
Accounts, categories and their embedded subcategories.

Admin routes live under ``/api/admin``; the storefront reads through the
public ``/api/accounts`` and ``/api/categories`` routes.
"""
import re
from decimal import ROUND_DOWN, Decimal
from typing import Optional, get_args

import structlog
from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from pymongo.errors import PyMongoError

from auth import get_admin_user
from database import (Database, create_document, delete_document, get_db, get_document, get_document_or_404,
                      paginate, serialize_document, update_document, utcnow)
from schemas import Account, AccountStatus, AccountUpdate, CategoryStatus, CategoryType, Category

logger = structlog.get_logger()

router = APIRouter(tags=["catalog"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])

PRICING_FIELDS = {"price", "originalPrice", "discountPercentage", "isOnSale"}
PUBLIC_SORT_FIELDS = {"createdAt", "price", "rating", "reviews", "discountPercentage", "title"}
TURKISH_FOLD = str.maketrans("ğüşıöç", "gusioc")


def slugify(text: str) -> str:
    slug = text.lower().translate(TURKISH_FOLD)
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    return re.sub(r"-+", "-", slug).strip("-")


def sale_price(original_price: float, discount_percentage: float) -> float:
    """Discounted price, rounded down to whole cents so it never exceeds the undiscounted one."""
    value = Decimal(str(original_price)) * (Decimal(100) - Decimal(str(discount_percentage))) / Decimal(100)
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def apply_pricing(doc: dict, changed=None) -> dict:
    """
    Enforce the pricing rule on a full account document (camelCase keys).

    ``changed`` names the fields the caller actually sent; a bare price
    without an originalPrice becomes the new originalPrice. When the account
    is on sale with a positive discount the price is derived from
    originalPrice.
    """
    changed = set(doc) if changed is None else set(changed)
    if "price" in changed and "originalPrice" not in changed:
        doc["originalPrice"] = doc.get("price", 0)
    if doc.get("isOnSale") and doc.get("discountPercentage", 0) > 0:
        if not doc.get("originalPrice") or doc["originalPrice"] <= 0:
            raise HTTPException(status_code=400, detail="Original price must be greater than zero for a discounted account")
        doc["price"] = sale_price(doc["originalPrice"], doc["discountPercentage"])
    return doc


def regex(value: str):
    return re.compile(re.escape(value), re.IGNORECASE)


class AccountUpdateIn(BaseModel):
    account_id: str = Field(..., alias="accountId", min_length=1)
    updates: AccountUpdate


class WeeklyDealIn(BaseModel):
    account_id: str = Field(..., alias="accountId", min_length=1)
    is_weekly_deal: bool = Field(..., alias="isWeeklyDeal")


class CategoryIn(BaseModel):
    title: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    type: CategoryType
    status: CategoryStatus = 'active'


class CategoryUpdateIn(CategoryIn):
    id: str = Field(..., alias="_id", min_length=1)


class SubcategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    is_active: bool = Field(True, alias="isActive")


class SubcategoryUpdateIn(SubcategoryIn):
    subcategory_id: str = Field(..., alias="subcategoryId", min_length=1)


# Admin accounts
@admin_router.get("/accounts")
def admin_list_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    search: str = "",
    category: str = "all",
    status: str = "all",
    game: str = "all",
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if search:
        pattern = regex(search)
        query["$or"] = [{"title": pattern}, {"game": pattern}, {"description": pattern}]
    if category != "all":
        query["category"] = category
    if status != "all":
        query["status"] = status
    if game != "all":
        query["game"] = game

    total = db["accounts"].count_documents(query)
    accounts = db["accounts"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)

    everything = list(db["accounts"].find({}, {"status": 1, "price": 1}))
    total_value = sum(a.get("price", 0) for a in everything)
    stats = {"total": len(everything)}
    for name in get_args(AccountStatus):
        stats[name] = sum(1 for a in everything if a.get("status") == name)
    stats["totalValue"] = total_value
    stats["avgPrice"] = total_value / len(everything) if everything else 0

    return {
        "success": True,
        "data": {
            "accounts": [serialize_document(a) for a in accounts],
            "pagination": paginate(page, limit, total),
            "stats": stats,
        },
    }


@admin_router.post("/accounts", status_code=201)
def admin_create_account(body: Account, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    doc = body.model_dump(by_alias=True)
    apply_pricing(doc, changed={to_camel(name) for name in body.model_fields_set})
    account_id = create_document(db, "accounts", doc)
    logger.info("Account created", account_id=account_id, game=doc["game"])
    return {"success": True, "message": "Account created", "data": serialize_document(get_document(db, "accounts", account_id))}


@admin_router.put("/accounts")
def admin_update_account(body: AccountUpdateIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    existing = get_document_or_404(db, "accounts", body.account_id, "Account not found", label="account id")
    changes = body.updates.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)

    if PRICING_FIELDS & set(changes):
        merged = apply_pricing({**existing, **changes}, changed=set(changes))
        for field in PRICING_FIELDS:
            if field in merged and merged[field] != existing.get(field):
                changes[field] = merged[field]

    account = update_document(db, "accounts", existing["_id"], changes)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"success": True, "message": "Account updated", "data": serialize_document(account)}


@admin_router.delete("/accounts")
def admin_delete_account(account_id: str = Query(..., alias="accountId"), db: Database = Depends(get_db),
                         _: dict = Depends(get_admin_user)):
    deleted = delete_document(db, "accounts", account_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"success": True, "message": "Account deleted", "data": serialize_document(deleted)}


# Weekly deals
@admin_router.get("/weekly-deals")
def list_weekly_deals(db: Database = Depends(get_db)):
    try:
        deals = list(db["accounts"].find({"isWeeklyDeal": True, "status": "available"}).sort("createdAt", -1))
    except PyMongoError as e:
        logger.error("Failed to load weekly deals", error=str(e))
        deals = []
    return {"success": True, "data": {"deals": [serialize_document(d) for d in deals]}}


@admin_router.post("/weekly-deals")
def set_weekly_deal(body: WeeklyDealIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    account = update_document(db, "accounts", body.account_id, {"isWeeklyDeal": body.is_weekly_deal})
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    message = "Added to weekly deals" if body.is_weekly_deal else "Removed from weekly deals"
    return {"success": True, "message": message, "data": serialize_document(account)}


# Public accounts
@router.get("/api/accounts")
def list_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    game: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: Database = Depends(get_db),
):
    query: dict = {"status": "available"}
    if category:
        query["category"] = category
    if subcategory:
        query["subcategory"] = subcategory
    if game:
        query["game"] = game
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if search:
        pattern = regex(search)
        query["$or"] = [{"title": pattern}, {"description": pattern}, {"game": pattern}]

    if sort_by not in PUBLIC_SORT_FIELDS:
        sort_by = "createdAt"
    direction = 1 if sort_order == "asc" else -1

    total = db["accounts"].count_documents(query)
    accounts = db["accounts"].find(query).sort(sort_by, direction).skip((page - 1) * limit).limit(limit)
    return {
        "success": True,
        "data": {
            "accounts": [serialize_document(a) for a in accounts],
            "totalAccounts": total,
            "totalPages": (total + limit - 1) // limit,
            "currentPage": page,
            "limit": limit,
        },
    }


@router.get("/api/accounts/featured")
def featured_accounts(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    docs = db["accounts"].find({"isFeatured": True, "status": "available"}).sort("createdAt", -1).limit(limit)
    return {"success": True, "data": {"accounts": [serialize_document(d) for d in docs]}}


@router.get("/api/accounts/on-sale")
def on_sale_accounts(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    query = {"isOnSale": True, "discountPercentage": {"$gt": 0}, "status": "available", "stock": {"$gt": 0}}
    docs = db["accounts"].find(query).sort([("discountPercentage", -1), ("createdAt", -1)]).limit(limit)
    return {"success": True, "data": {"accounts": [serialize_document(d) for d in docs]}}


@router.get("/api/accounts/{account_id}")
def get_account(account_id: str, db: Database = Depends(get_db)):
    account = get_document_or_404(db, "accounts", account_id, "Account not found", label="account id")
    return {"success": True, "data": serialize_document(account)}


# Admin categories
@admin_router.get("/categories")
def admin_list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    type: Optional[CategoryType] = None,
    status: Optional[CategoryStatus] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if type:
        query["type"] = type
    if status:
        query["status"] = status
    if search:
        query["title"] = regex(search)

    total = db["categories"].count_documents(query)
    categories = db["categories"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)

    everything = list(db["categories"].find({}, {"type": 1, "status": 1}))
    stats = {
        "total": len(everything),
        "accounts": sum(1 for c in everything if c.get("type") == "account"),
        "licenses": sum(1 for c in everything if c.get("type") == "license"),
        "active": sum(1 for c in everything if c.get("status") == "active"),
        "inactive": sum(1 for c in everything if c.get("status") == "inactive"),
    }
    return {
        "success": True,
        "data": {
            "categories": [serialize_document(c) for c in categories],
            "stats": stats,
            "pagination": paginate(page, limit, total),
        },
    }


@admin_router.post("/categories", status_code=201)
def admin_create_category(body: CategoryIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    if db["categories"].find_one({"title": body.title, "type": body.type}):
        raise HTTPException(status_code=400, detail="Category already exists")
    category = Category(title=body.title, image=body.image, type=body.type, status=body.status)
    category_id = create_document(db, "categories", category)
    logger.info("Category created", category_id=category_id, title=body.title)
    return {"success": True, "message": "Category created",
            "data": serialize_document(get_document(db, "categories", category_id))}


@admin_router.put("/categories")
def admin_update_category(body: CategoryUpdateIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    clash = db["categories"].find_one({"title": body.title, "type": body.type})
    if clash and str(clash["_id"]) != body.id:
        raise HTTPException(status_code=400, detail="Category already exists")
    category = update_document(db, "categories", body.id,
                               {"title": body.title, "image": body.image, "type": body.type, "status": body.status})
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"success": True, "message": "Category updated", "data": serialize_document(category)}


@admin_router.delete("/categories")
def admin_delete_category(id: str = Query(...), db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    # accounts keep their category string
    if delete_document(db, "categories", id) is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"success": True, "message": "Category deleted"}


# Public categories
@router.get("/api/categories")
def list_categories(type: Optional[CategoryType] = None, limit: int = Query(20, ge=1, le=200),
                    db: Database = Depends(get_db)):
    query: dict = {"status": "active"}
    if type:
        query["type"] = type
    fields = ("title", "image", "type", "status", "itemCount", "subcategories", "createdAt", "updatedAt")
    categories = []
    for c in db["categories"].find(query).limit(limit):
        doc = {"_id": c["_id"], **{f: c.get(f) for f in fields}}
        doc["itemCount"] = doc["itemCount"] or 0
        doc["subcategories"] = [s for s in doc["subcategories"] or [] if s.get("isActive", True)]
        categories.append(serialize_document(doc))
    return {"success": True, "data": {"categories": categories}}


# Subcategories
def _subcategory_slug(name: str) -> str:
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=400, detail="Subcategory name is required")
    return slug


@router.get("/api/categories/{category_id}/subcategories")
def list_subcategories(category_id: str, db: Database = Depends(get_db)):
    category = get_document_or_404(db, "categories", category_id, "Category not found", label="category id")
    subs = sorted(category.get("subcategories", []), key=lambda s: s.get("order", 0))
    return {"success": True, "data": serialize_document(subs)}


@router.post("/api/categories/{category_id}/subcategories", status_code=201)
def add_subcategory(category_id: str, body: SubcategoryIn, db: Database = Depends(get_db),
                    _: dict = Depends(get_admin_user)):
    category = get_document_or_404(db, "categories", category_id, "Category not found", label="category id")
    subs = category.get("subcategories", [])
    slug = _subcategory_slug(body.name)
    if any(s.get("slug") == slug for s in subs):
        raise HTTPException(status_code=400, detail="Subcategory already exists")

    sub = {"_id": ObjectId(), "name": body.name, "slug": slug, "description": body.description,
           "isActive": body.is_active, "order": len(subs) + 1}
    db["categories"].update_one({"_id": category["_id"]},
                                {"$push": {"subcategories": sub}, "$set": {"updatedAt": utcnow()}})
    return {"success": True, "message": "Subcategory added", "data": serialize_document(sub)}


@router.put("/api/categories/{category_id}/subcategories")
def update_subcategory(category_id: str, body: SubcategoryUpdateIn, db: Database = Depends(get_db),
                       _: dict = Depends(get_admin_user)):
    category = get_document_or_404(db, "categories", category_id, "Category not found", label="category id")
    subs = category.get("subcategories", [])
    index = next((i for i, s in enumerate(subs) if str(s.get("_id")) == body.subcategory_id), None)
    if index is None:
        raise HTTPException(status_code=404, detail="Subcategory not found")

    slug = _subcategory_slug(body.name)
    if any(s.get("slug") == slug for i, s in enumerate(subs) if i != index):
        raise HTTPException(status_code=400, detail="Subcategory already exists")

    subs[index] = {**subs[index], "name": body.name, "slug": slug, "description": body.description,
                   "isActive": body.is_active}
    db["categories"].update_one({"_id": category["_id"]}, {"$set": {"subcategories": subs, "updatedAt": utcnow()}})
    return {"success": True, "message": "Subcategory updated", "data": serialize_document(subs[index])}


@router.delete("/api/categories/{category_id}/subcategories")
def delete_subcategory(category_id: str, subcategory_id: str = Query(..., alias="subcategoryId"),
                       db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    category = get_document_or_404(db, "categories", category_id, "Category not found", label="category id")
    remaining = [s for s in category.get("subcategories", []) if str(s.get("_id")) != subcategory_id]
    db["categories"].update_one({"_id": category["_id"]},
                                {"$set": {"subcategories": remaining, "updatedAt": utcnow()}})
    return {"success": True, "message": "Subcategory deleted"}
