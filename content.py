"""
Editable storefront content: announcements, slider, testimonials, popular
categories, help-center entries and the system settings.

Everything except popular categories and help entries lives in ``site_content``
as one document per key; until an admin saves a key the defaults below are served.
"""
from typing import Any, List, Literal, Optional, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth import get_admin_user
from database import (Database, create_document, delete_document, get_db, get_document, get_document_or_404,
                      get_documents, serialize_document, update_document, utcnow)
from schemas import HelpContent, PopularCategory, SliderItem, SystemSettings, Testimonial

logger = structlog.get_logger()

router = APIRouter(tags=["content"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])

DEFAULT_ANNOUNCEMENTS = [
    "🔥 Yeni Valorant hesapları stoklarda!",
    "💫 CS:GO Prime hesaplarında %20 indirim!",
    "🎮 League of Legends Elmas hesapları geldi!",
    "🌟 7/24 Canlı Destek hizmetimiz aktif!",
]

DEFAULT_SLIDES = [
    {
        "id": 1,
        "title": "OYUN HESAPLARI",
        "subtitle": "Güvenli Alışveriş",
        "description": "FPS, MMORPG, MOBA oyunları için güvenilir hesap platformu",
        "buttonText": "Keşfet",
        "link": "/products",
        "backgroundColor": "linear-gradient(135deg, #667eea 0%, #764ba2 100%)",
        "backgroundImage": "",
        "icons": [
            {"type": "gamepad", "x": 15, "y": 20, "rotation": -15},
            {"type": "trophy", "x": 85, "y": 15, "rotation": 25},
            {"type": "star", "x": 20, "y": 75, "rotation": 45},
        ],
    },
    {
        "id": 2,
        "title": "HIZLI TESLİMAT",
        "subtitle": "24 Saat Garanti",
        "description": "Siparişiniz 24 saat içinde güvenle teslim edilir",
        "buttonText": "Sipariş Ver",
        "link": "/products",
        "backgroundColor": "linear-gradient(135deg, #f093fb 0%, #f5576c 100%)",
        "backgroundImage": "",
        "icons": [
            {"type": "clock", "x": 20, "y": 30, "rotation": 0},
            {"type": "shield", "x": 75, "y": 20, "rotation": -20},
        ],
    },
    {
        "id": 3,
        "title": "GÜVENLİ ÖDEME",
        "subtitle": "Bakiye Sistemi",
        "description": "Güvenli bakiye yükleme ve ödeme sistemi ile kolay alışveriş",
        "buttonText": "Bakiye Yükle",
        "link": "/balance",
        "backgroundColor": "linear-gradient(135deg, #4facfe 0%, #00f2fe 100%)",
        "backgroundImage": "",
        "icons": [
            {"type": "wallet", "x": 18, "y": 25, "rotation": 10},
            {"type": "lock", "x": 15, "y": 78, "rotation": 35},
        ],
    },
]

DEFAULT_TESTIMONIALS = [
    {"id": 1, "name": "Ahmet K.", "avatar": "👨‍💼", "rating": 5,
     "comment": "PUBG Mobile hesabımı çok hızlı teslim aldım. Güvenilir ve kaliteli hizmet!",
     "game": "PUBG Mobile 660 UC", "date": "3.6.2025", "verified": True},
    {"id": 2, "name": "Zeynep M.", "avatar": "👩‍💻", "rating": 5,
     "comment": "Legend Online hesabı tam istediğim gibiydi. Hızlı teslimat ve güvenli ödeme.",
     "game": "Legend Online 500+150 Bonus Elmas", "date": "3.6.2025", "verified": True},
    {"id": 3, "name": "Mehmet Y.", "avatar": "👨‍🎮", "rating": 5,
     "comment": "Metin2 hesabını çok beğendim. Hızlı teslimat ve kaliteli hizmet için teşekkürler!",
     "game": "Metin2 450 Ejder Parası", "date": "3.6.2025", "verified": True},
]


def load_content(db: Database, key: str, default: Any) -> Any:
    doc = db["site_content"].find_one({"key": key})
    return doc["value"] if doc else default


def save_content(db: Database, key: str, value: Any):
    db["site_content"].update_one({"key": key}, {"$set": {"value": value, "updatedAt": utcnow()}}, upsert=True)


def get_settings(db: Database) -> SystemSettings:
    return SystemSettings(**load_content(db, "settings", {}))


def first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err['msg']}" if field else err["msg"]


class AnnouncementsIn(BaseModel):
    announcements: List[str]


class PopularCategoriesIn(BaseModel):
    categories: List[dict]


class TestimonialAction(BaseModel):
    action: Literal['update', 'add', 'delete']
    testimonials: Optional[List[Testimonial]] = None
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    avatar: str = ""
    rating: int = Field(5, ge=1, le=5)
    comment: Optional[str] = None
    game: str = ""
    verified: bool = False


# Announcements
@router.get("/api/announcements")
def get_announcements(db: Database = Depends(get_db)):
    return {"success": True, "data": load_content(db, "announcements", DEFAULT_ANNOUNCEMENTS)}


@router.post("/api/announcements")
def save_announcements(body: AnnouncementsIn, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    announcements = [a.strip() for a in body.announcements if a and a.strip()]
    if not announcements:
        raise HTTPException(status_code=400, detail="At least one announcement is required")
    save_content(db, "announcements", announcements)
    return {"success": True, "message": "Announcements updated", "data": announcements}


# Slider
@router.get("/api/slider")
def get_slider(db: Database = Depends(get_db)):
    return {"success": True, "data": load_content(db, "slider", DEFAULT_SLIDES)}


@router.post("/api/slider")
def save_slider(slides: List[SliderItem], db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    data = [s.model_dump(by_alias=True) for s in slides]
    save_content(db, "slider", data)
    return {"success": True, "data": data}


# Testimonials
@router.get("/api/testimonials")
def get_testimonials(db: Database = Depends(get_db)):
    return {"success": True, "data": load_content(db, "testimonials", DEFAULT_TESTIMONIALS)}


@router.post("/api/testimonials")
def change_testimonials(body: TestimonialAction, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    testimonials = load_content(db, "testimonials", DEFAULT_TESTIMONIALS)

    if body.action == "update":
        if body.testimonials is None:
            raise HTTPException(status_code=400, detail="Testimonials are required")
        testimonials = [t.model_dump(by_alias=True) for t in body.testimonials]
        save_content(db, "testimonials", testimonials)
        return {"success": True, "message": "Testimonials updated"}

    if body.action == "add":
        if not body.name or not body.comment:
            raise HTTPException(status_code=400, detail="Name and comment are required")
        today = utcnow()
        new_id = max([t["id"] for t in testimonials if isinstance(t.get("id"), int)], default=0) + 1
        entry = Testimonial(id=new_id, name=body.name, avatar=body.avatar, rating=body.rating, comment=body.comment,
                            game=body.game, date=f"{today.day}.{today.month}.{today.year}", verified=body.verified)
        testimonials.append(entry.model_dump(by_alias=True))
        save_content(db, "testimonials", testimonials)
        return {"success": True, "message": "Testimonial added", "data": entry.model_dump(by_alias=True)}

    remaining = [t for t in testimonials if str(t.get("id")) != str(body.id)]
    if len(remaining) == len(testimonials):
        raise HTTPException(status_code=404, detail="Testimonial not found")
    save_content(db, "testimonials", remaining)
    return {"success": True, "message": "Testimonial deleted"}


# Popular categories
@admin_router.get("/popular-categories")
def get_popular_categories(db: Database = Depends(get_db)):
    try:
        docs = list(db["popularcategories"].find({}).sort("order", 1))
    except PyMongoError as e:
        logger.error("Failed to load popular categories", error=str(e))
        docs = []
    return {"success": True, "data": [serialize_document(d) for d in docs]}


@admin_router.post("/popular-categories")
def save_popular_categories(body: PopularCategoriesIn, db: Database = Depends(get_db),
                            _: dict = Depends(get_admin_user)):
    try:
        categories = [PopularCategory(**{k: v for k, v in c.items() if k != "_id"}) for c in body.categories]
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=first_error(e))

    now = utcnow()
    docs = [{**c.model_dump(by_alias=True), "createdAt": now, "updatedAt": now} for c in categories]
    db["popularcategories"].delete_many({})
    if docs:
        db["popularcategories"].insert_many(docs)
    saved = list(db["popularcategories"].find({}).sort("order", 1))
    return {"success": True, "message": "Popular categories saved", "data": [serialize_document(d) for d in saved]}


# System settings
@admin_router.get("/settings")
def read_settings(db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    return {"success": True, "data": get_settings(db).model_dump(by_alias=True)}


@admin_router.put("/settings")
def update_settings(body: dict, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    current = get_settings(db).model_dump(by_alias=True)
    try:
        settings = SystemSettings(**{**current, **body})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=first_error(e))
    data = settings.model_dump(by_alias=True)
    save_content(db, "settings", data)
    logger.info("System settings updated", admin=admin.get("email"), fields=sorted(body))
    return {"success": True, "message": "Settings saved", "data": data}


# Help center
class HelpContentUpdate(BaseModel):
    type: Optional[Literal['faq', 'general']] = None
    key: Optional[str] = Field(None, min_length=1)
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    order: Optional[int] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


def check_help_key(db: Database, key: str, exclude_id: Optional[str] = None):
    clash = db["helpcontents"].find_one({"key": key})
    if clash and str(clash["_id"]) != exclude_id:
        raise HTTPException(status_code=400, detail="Help content key already exists")


@router.get("/api/help-content")
def list_help_content(type: Optional[Literal['faq', 'general']] = None, db: Database = Depends(get_db)):
    query: dict = {"isActive": True}
    if type:
        query["type"] = type
    docs = get_documents(db, "helpcontents", query, sort=[("order", 1), ("createdAt", 1)])
    return {"success": True, "data": [serialize_document(d) for d in docs]}


@admin_router.get("/help-content")
def admin_list_help_content(type: Optional[Literal['faq', 'general']] = None, db: Database = Depends(get_db),
                            _: dict = Depends(get_admin_user)):
    docs = get_documents(db, "helpcontents", {"type": type} if type else {},
                         sort=[("type", 1), ("order", 1), ("createdAt", 1)])
    return {"success": True, "data": [serialize_document(d) for d in docs]}


@admin_router.post("/help-content", status_code=201)
def create_help_content(body: HelpContent, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    check_help_key(db, body.key)
    try:
        content_id = create_document(db, "helpcontents", body)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Help content key already exists")
    logger.info("Help content created", key=body.key, admin=admin.get("email"))
    return {"success": True, "message": "Help content created",
            "data": serialize_document(get_document(db, "helpcontents", content_id))}


@admin_router.get("/help-content/{content_id}")
def read_help_content(content_id: str, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    doc = get_document_or_404(db, "helpcontents", content_id, "Help content not found", label="help content id")
    return {"success": True, "data": serialize_document(doc)}


@admin_router.put("/help-content/{content_id}")
def update_help_content(content_id: str, body: HelpContentUpdate, db: Database = Depends(get_db),
                        _: dict = Depends(get_admin_user)):
    updates = body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if "key" in updates:
        check_help_key(db, updates["key"], exclude_id=content_id)
    doc = update_document(db, "helpcontents", content_id, updates)
    if doc is None:
        raise HTTPException(status_code=404, detail="Help content not found")
    return {"success": True, "message": "Help content updated", "data": serialize_document(doc)}


@admin_router.delete("/help-content/{content_id}")
def delete_help_content(content_id: str, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    if delete_document(db, "helpcontents", content_id) is None:
        raise HTTPException(status_code=404, detail="Help content not found")
    return {"success": True, "message": "Help content deleted"}
