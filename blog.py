import re
from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field

from auth import get_admin_user
from catalog import slugify
from database import (Database, create_document, delete_document, get_db, get_document, paginate,
                      serialize_document, update_document, utcnow)
from schemas import Blog, BlogCategory, BlogStatus, Document

router = APIRouter(prefix="/api/blog", tags=["blog"])


class BlogIn(Document):
    title: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = None
    excerpt: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    author: str = 'HD Dijital'
    category: BlogCategory
    tags: List[str] = Field(default_factory=list)
    featured_image: str = ""
    images: List[str] = Field(default_factory=list)
    status: BlogStatus = 'draft'
    read_time: str = '5 dakika'
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    keywords: List[str] = Field(default_factory=list)


class BlogUpdate(Document):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = None
    excerpt: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = None
    category: Optional[BlogCategory] = None
    tags: Optional[List[str]] = None
    featured_image: Optional[str] = None
    images: Optional[List[str]] = None
    status: Optional[BlogStatus] = None
    read_time: Optional[str] = None
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    keywords: Optional[List[str]] = None


def unique_slug(db: Database, base: str) -> str:
    slug, n = base, 2
    while db["blogs"].find_one({"slug": slug}):
        slug = f"{base}-{n}"
        n += 1
    return slug


def find_post(db: Database, id_or_slug: str) -> Optional[dict]:
    if ObjectId.is_valid(id_or_slug):
        post = db["blogs"].find_one({"_id": ObjectId(id_or_slug)})
        if post:
            return post
    return db["blogs"].find_one({"slug": id_or_slug})


@router.get("")
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str = "published",
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query: dict = {}
    if status != "all":
        query["status"] = status
    if category:
        query["category"] = category
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"title": pattern}, {"excerpt": pattern}, {"content": pattern}]

    total = db["blogs"].count_documents(query)
    posts = db["blogs"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {"success": True, "data": {"blogs": [serialize_document(p) for p in posts],
                                      "pagination": paginate(page, limit, total)}}


@router.get("/{id_or_slug}")
def get_post(id_or_slug: str, db: Database = Depends(get_db)):
    post = find_post(db, id_or_slug)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    if post.get("status") == "published":
        db["blogs"].update_one({"_id": post["_id"]}, {"$inc": {"views": 1}})
        post["views"] = post.get("views", 0) + 1
    return {"success": True, "data": serialize_document(post)}


@router.post("/{post_id}/view")
def count_view(post_id: str, db: Database = Depends(get_db)):
    post = get_document(db, "blogs", post_id, label="blog id")
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    db["blogs"].update_one({"_id": post["_id"]}, {"$inc": {"views": 1}})
    return {"success": True, "views": post.get("views", 0) + 1}


@router.post("", status_code=201)
def create_post(body: BlogIn, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    slug = slugify(body.slug or "")
    if slug:
        if db["blogs"].find_one({"slug": slug}):
            raise HTTPException(status_code=400, detail="Slug is already in use")
    else:
        slug = unique_slug(db, slugify(body.title) or "post")

    fields = body.model_dump(exclude={"slug"})
    post = Blog(**fields, slug=slug, created_by=str(admin["_id"]))
    post.meta_title = post.meta_title or post.title[:60]
    post.meta_description = post.meta_description or post.excerpt[:160]
    if post.status == "published":
        post.published_at = utcnow()

    post_id = create_document(db, "blogs", post)
    return {"success": True, "message": "Blog post created", "data": serialize_document(get_document(db, "blogs", post_id))}


@router.put("/{post_id}")
def update_post(post_id: str, body: BlogUpdate, db: Database = Depends(get_db), admin: dict = Depends(get_admin_user)):
    existing = get_document(db, "blogs", post_id, label="blog id")
    if existing is None:
        raise HTTPException(status_code=404, detail="Blog post not found")

    updates = body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
    if "slug" in updates:
        updates["slug"] = slugify(updates["slug"])
        if not updates["slug"]:
            raise HTTPException(status_code=400, detail="Slug must contain letters or digits")
        clash = db["blogs"].find_one({"slug": updates["slug"], "_id": {"$ne": existing["_id"]}})
        if clash:
            raise HTTPException(status_code=400, detail="Slug is already in use")
    if updates.get("status") == "published" and not existing.get("publishedAt"):
        updates["publishedAt"] = utcnow()
    updates["updatedBy"] = str(admin["_id"])

    post = update_document(db, "blogs", existing["_id"], updates)
    return {"success": True, "message": "Blog post updated", "data": serialize_document(post)}


@router.delete("/{post_id}")
def delete_post(post_id: str, db: Database = Depends(get_db), _: dict = Depends(get_admin_user)):
    if delete_document(db, "blogs", post_id) is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return {"success": True, "message": "Blog post deleted"}
