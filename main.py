import os
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

import activity
import blog
import cart_tracking
import catalog
import commerce
import config
import content
import reviews
import support
import users
from database import Database, ensure_indexes

logger = structlog.get_logger()


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the API. Pass ``database`` to skip connecting to MongoDB (tests inject mongomock)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if app.state.db is None:
            config.configure_logging()
            owned = Database.connect()
            try:
                ensure_indexes(owned)
            except PyMongoError as e:
                logger.error("Could not ensure indexes", error=str(e))
            app.state.db = owned
        yield
        if owned is not None:
            owned.close()
            app.state.db = None

    app = FastAPI(title="HesapDurağı API", version="1.0.0", lifespan=lifespan)
    app.state.db = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = first.get("msg", "Invalid request")
        return JSONResponse(status_code=400, content={
            "success": False,
            "error": f"{field}: {message}" if field else message,
            "details": errors,
        })

    for module in (users, catalog, commerce, reviews, support, cart_tracking, content):
        app.include_router(module.router)
        if hasattr(module, "admin_router"):
            app.include_router(module.admin_router)
    app.include_router(blog.router)
    app.include_router(activity.router)

    @app.get("/", tags=["meta"])
    def read_root():
        return {"message": "HesapDurağı API running"}

    @app.get("/test", tags=["meta"])
    def test_database(request: Request):
        db = request.app.state.db
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": []
        }
        try:
            if db is not None:
                response["database"] = "✅ Available"
                response["database_name"] = getattr(db, 'name', 'unknown')
                response["collections"] = db.list_collection_names()
                response["connection_status"] = "Connected"
            return response
        except PyMongoError as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
            return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
