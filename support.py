import random
import string
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from auth import get_admin_user, get_current_active_user
from database import (Database, create_document, get_db, get_document, get_document_or_404, get_documents, paginate,
                      serialize_document, update_document, utcnow)
from schemas import Support, TicketCategory, TicketPriority, TicketStatus

router = APIRouter(prefix="/api/support", tags=["support"])
admin_router = APIRouter(prefix="/api/admin/support", tags=["admin"])


class TicketIn(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    category: TicketCategory = 'general'
    priority: TicketPriority = 'medium'


class TicketUpdateIn(BaseModel):
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    admin_response: Optional[str] = Field(None, alias="adminResponse", max_length=2000)


class ResponseIn(BaseModel):
    message: str = Field(..., max_length=2000)


def generate_ticket_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return f"TKT-{int(time.time() * 1000)}-{suffix}"


def group_count(db: Database, field: str) -> list:
    return list(db["supports"].aggregate([{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]))


# Customer
@router.get("")
def list_my_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_active_user),
):
    query: dict = {"userId": str(current_user["_id"])}
    if status and status != "all":
        query["status"] = status
    total = db["supports"].count_documents(query)
    tickets = get_documents(db, "supports", query, limit=limit, sort=[("createdAt", -1)], skip=(page - 1) * limit)
    return {"success": True, "tickets": [serialize_document(t) for t in tickets],
            "pagination": paginate(page, limit, total)}


@router.post("", status_code=201)
def open_ticket(body: TicketIn, db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    ticket = Support(
        ticket_id=generate_ticket_id(),
        user_id=str(current_user["_id"]),
        user_name=current_user["name"],
        user_email=current_user["email"],
        subject=body.subject.strip(),
        message=body.message.strip(),
        category=body.category,
        priority=body.priority,
    )
    ticket_id = create_document(db, "supports", ticket)
    return {"success": True, "message": "Support ticket created",
            "ticket": serialize_document(get_document(db, "supports", ticket_id))}


# Admin
@admin_router.get("")
def admin_list_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    for field, value in (("status", status), ("priority", priority), ("category", category)):
        if value and value != "all":
            query[field] = value

    total = db["supports"].count_documents(query)
    tickets = db["supports"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {
        "success": True,
        "tickets": [serialize_document(t) for t in tickets],
        "pagination": paginate(page, limit, total),
        "stats": {"byStatus": group_count(db, "status"), "byPriority": group_count(db, "priority"), "total": total},
    }


@admin_router.get("/{ticket_id}")
def get_ticket(ticket_id: str, db: Database = Depends(get_db), current_user: dict = Depends(get_current_active_user)):
    ticket = get_document_or_404(db, "supports", ticket_id, "Support ticket not found", label="ticket id")
    if current_user.get("role") != "admin" and ticket.get("userId") != str(current_user["_id"]):
        raise HTTPException(status_code=403, detail="Not allowed to view this ticket")
    return {"success": True, "ticket": serialize_document(ticket)}


@admin_router.put("/{ticket_id}")
def update_ticket(ticket_id: str, body: TicketUpdateIn, db: Database = Depends(get_db),
                  admin: dict = Depends(get_admin_user)):
    updates = body.model_dump(by_alias=True, exclude_none=True)
    updates["adminId"] = str(admin["_id"])
    if body.status in ("resolved", "closed"):
        updates["resolvedAt"] = utcnow()
    ticket = update_document(db, "supports", ticket_id, updates)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Support ticket not found")
    return {"success": True, "message": "Support ticket updated", "ticket": serialize_document(ticket)}


@admin_router.post("/{ticket_id}/response")
def respond_to_ticket(ticket_id: str, body: ResponseIn, db: Database = Depends(get_db),
                      admin: dict = Depends(get_admin_user)):
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Response message is required")
    ticket = update_document(db, "supports", ticket_id,
                             {"adminResponse": message, "adminId": str(admin["_id"]), "status": "in-progress"})
    if ticket is None:
        raise HTTPException(status_code=404, detail="Support ticket not found")
    return {"success": True, "message": "Response sent", "ticket": serialize_document(ticket)}
