import logging
import os

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import schemas
from admin import router as admin_router
from auth import router as auth_router, users_router
from carts import router as cart_router
from catalog import router as catalog_router
from database import db, ensure_indexes
from errors import ApiError
from orders import router as order_router
from responses import fail
from reviews import router as review_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(title="Pharmacy E-commerce API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(catalog_router)
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(review_router)
app.include_router(admin_router)


# Error envelope
@app.exception_handler(StarletteHTTPException)
async def http_error(request, exc: StarletteHTTPException):
    error = type(exc).__name__ if isinstance(exc, ApiError) else None
    return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail), error))


@app.exception_handler(RequestValidationError)
async def validation_error(request, exc: RequestValidationError):
    errors = exc.errors()
    error = None
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        error = f"{where}: {first.get('msg')}" if where else first.get("msg")
    return JSONResponse(status_code=400, content=fail("Validation failed", error))


@app.exception_handler(Exception)
async def unhandled_error(request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=fail("Internal server error", str(exc)))


@app.on_event("startup")
def startup():
    ensure_indexes()


# Health
@app.get("/")
def read_root():
    return {"message": "Pharmacy E-commerce Backend running"}


@app.get("/test")
def test_database():
    report = {
        "backend": "ok",
        "database_url": "set" if os.getenv("DATABASE_URL") else "not set",
        "database_name": "set" if os.getenv("DATABASE_NAME") else "not set",
    }
    try:
        report["collections"] = db.list_collection_names() if db is not None else []
        report["db"] = "ok" if db is not None else "not_configured"
    except Exception as e:
        report["db"] = f"error: {str(e)[:80]}"
    return report


@app.get("/schema")
def get_schema():
    models = [
        schemas.User, schemas.Category, schemas.Product,
        schemas.Cart, schemas.Order, schemas.Review,
    ]
    return {model.__name__.lower(): model.model_json_schema() for model in models}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
