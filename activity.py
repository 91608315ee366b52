"""Audit records kept in the ``logs`` collection, plus the admin endpoints that read them."""
import re
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from auth import get_admin_user
from database import Database, get_db, paginate, serialize_document, utcnow
from schemas import Log, LogCategory, LogLevel

logger = structlog.get_logger()

router = APIRouter(prefix="/api/admin/logs", tags=["admin"])


def client_info(request: Optional[Request]) -> dict:
    if request is None:
        return {}
    headers = request.headers
    return {
        "ip_address": headers.get("x-forwarded-for") or headers.get("x-real-ip") or "unknown",
        "user_agent": headers.get("user-agent") or "unknown",
    }


def create_log(db: Database, level: str, category: str, message: str, user_id: Optional[str] = None,
               user_name: Optional[str] = None, request: Optional[Request] = None,
               details: Optional[dict] = None) -> bool:
    """Append an audit record. Returns False instead of raising when the write fails."""
    try:
        entry = Log(
            timestamp=utcnow(),
            level=level,
            category=category,
            message=message,
            user_id=user_id,
            user_name=user_name,
            details=details,
            **client_info(request),
        )
        db["logs"].insert_one(entry.model_dump(by_alias=True))
        return True
    except (PyMongoError, ValueError) as e:
        logger.error("Failed to write audit log", message=message, error=str(e))
        return False


class LogIn(BaseModel):
    level: LogLevel = 'info'
    source: LogCategory = Field('admin', description="Log category")
    message: str = Field(..., min_length=1)
    details: Optional[dict] = None


@router.get("")
def list_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    level: Optional[LogLevel] = None,
    source: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
    _: dict = Depends(get_admin_user),
):
    query: dict = {}
    if level:
        query["level"] = level
    if source:
        query["category"] = re.compile(re.escape(source), re.IGNORECASE)
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"message": pattern}, {"userName": pattern}, {"category": pattern}, {"ipAddress": pattern}]

    total = db["logs"].count_documents(query)
    docs = db["logs"].find(query).sort("timestamp", -1).skip((page - 1) * limit).limit(limit)
    return {
        "success": True,
        "logs": [serialize_document(d) for d in docs],
        "pagination": paginate(page, limit, total),
    }


@router.post("")
def add_log(body: LogIn, request: Request, db: Database = Depends(get_db),
            admin: dict = Depends(get_admin_user)):
    ok = create_log(db, body.level, body.source, body.message, user_id=str(admin["_id"]),
                    user_name=admin.get("email"), request=request, details=body.details)
    return {"success": ok, "message": "Log entry recorded" if ok else "Log entry could not be stored"}


@router.delete("")
def clear_logs(db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    result = db["logs"].delete_many({})
    logger.info("Audit logs cleared", admin=admin.get("email"), deleted=result.deleted_count)
    return {"success": True, "deletedCount": result.deleted_count,
            "message": f"{result.deleted_count} log entries deleted"}
