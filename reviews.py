"""
Account reviews.

Buyers rate accounts they received through a completed order. Reviews wait
for an admin; ``Account.rating`` and ``Account.reviews`` always reflect the
approved reviews only and are recomputed whenever that set changes.
"""
import re
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from auth import get_admin_user, get_current_active_user
from database import (Database, create_document, delete_document, get_db, get_document,
                      paginate, serialize_document, to_object_id, update_document)
from schemas import Review

logger = structlog.get_logger()

router = APIRouter(tags=["reviews"])
admin_router = APIRouter(prefix="/api/admin/reviews", tags=["admin"])

ANONYMOUS_NAME = "Anonim Kullanıcı"


class ReviewIn(BaseModel):
    account_id: str = Field(..., alias="accountId", min_length=1)
    order_id: str = Field(..., alias="orderId", min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=500)
    is_anonymous: bool = Field(False, alias="isAnonymous")


class ReviewApprovalIn(BaseModel):
    review_id: str = Field(..., alias="reviewId", min_length=1)
    is_approved: bool = Field(..., alias="isApproved")


def average(ratings) -> float:
    return round(sum(ratings) / len(ratings), 1) if ratings else 0


def recompute_rating(db: Database, account_id: str) -> Optional[dict]:
    """Write the approved-review average and count onto the account."""
    ratings = [r["rating"] for r in db["reviews"].find({"accountId": account_id, "isApproved": True}, {"rating": 1})]
    return update_document(db, "accounts", account_id, {"rating": average(ratings), "reviews": len(ratings)})


def public_review(review: dict) -> dict:
    return {
        "_id": str(review["_id"]),
        "rating": review["rating"],
        "comment": review.get("comment", ""),
        "userName": ANONYMOUS_NAME if review.get("isAnonymous") else review.get("userName", ""),
        "isAnonymous": review.get("isAnonymous", False),
        "createdAt": review.get("createdAt"),
    }


# Storefront
@router.get("/api/reviews")
def list_reviews(
    account_id: str = Query(..., alias="accountId", min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    query = {"accountId": account_id, "isApproved": True}
    total = db["reviews"].count_documents(query)
    reviews = db["reviews"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    ratings = [r["rating"] for r in db["reviews"].find(query, {"rating": 1})]
    return {
        "success": True,
        "reviews": [public_review(r) for r in reviews],
        "averageRating": average(ratings),
        "reviewCount": total,
        "pagination": paginate(page, limit, total),
    }


@router.post("/api/reviews", status_code=201)
def create_review(body: ReviewIn, db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    user_id = str(current_user["_id"])
    order = db["orders"].find_one({
        "_id": to_object_id(body.order_id, "order id"),
        "buyer._id": user_id,
        "account._id": body.account_id,
        "status": "completed",
    })
    if order is None:
        raise HTTPException(status_code=400, detail="Only completed purchases can be reviewed")
    if db["reviews"].find_one({"userId": user_id, "accountId": body.account_id}):
        raise HTTPException(status_code=400, detail="You have already reviewed this account")

    review = Review(
        user_id=user_id,
        user_name=current_user["name"],
        account_id=body.account_id,
        order_id=body.order_id,
        rating=body.rating,
        comment=body.comment.strip(),
        is_anonymous=body.is_anonymous,
    )
    try:
        review_id = create_document(db, "reviews", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="You have already reviewed this account")
    return {"success": True, "message": "Review submitted for approval",
            "review": public_review(get_document(db, "reviews", review_id))}


@router.post("/api/accounts/update-ratings")
def update_all_ratings(db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    account_ids = [str(a["_id"]) for a in db["accounts"].find({}, {"_id": 1})]
    rated = db["reviews"].distinct("accountId", {"isApproved": True})
    for account_id in account_ids:
        recompute_rating(db, account_id)
    updated = len(set(rated) & set(account_ids))
    logger.info("Account ratings recomputed", accounts=len(account_ids), rated=updated)
    return {"success": True, "totalAccounts": len(account_ids), "updatedAccounts": updated}


# Admin
@admin_router.get("")
def admin_list_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    status: Literal['pending', 'approved', 'all'] = 'all',
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if status != "all":
        query["isApproved"] = status == "approved"
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"userName": pattern}, {"comment": pattern}]

    total = db["reviews"].count_documents(query)
    reviews = db["reviews"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    approved = [r["rating"] for r in db["reviews"].find({"isApproved": True}, {"rating": 1})]
    stats = {
        "total": db["reviews"].count_documents({}),
        "pending": db["reviews"].count_documents({"isApproved": False}),
        "approved": len(approved),
        "avgRating": average(approved),
    }
    return {
        "success": True,
        "reviews": [serialize_document(r) for r in reviews],
        "pagination": paginate(page, limit, total),
        "stats": stats,
    }


@admin_router.put("")
def admin_approve_review(body: ReviewApprovalIn, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    review = update_document(db, "reviews", body.review_id, {"isApproved": body.is_approved})
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    recompute_rating(db, review["accountId"])
    logger.info("Review moderated", review_id=body.review_id, approved=body.is_approved, admin=admin.get("email"))
    return {"success": True, "message": "Review approved" if body.is_approved else "Review rejected",
            "review": serialize_document(review)}


@admin_router.delete("")
def admin_delete_review(review_id: str = Query(..., alias="reviewId"), db: Database = Depends(get_db),
                        _: dict = Depends(get_admin_user)):
    review = delete_document(db, "reviews", review_id)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    recompute_rating(db, review["accountId"])
    return {"success": True, "message": "Review deleted"}
