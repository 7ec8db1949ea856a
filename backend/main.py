from contextlib import asynccontextmanager
from datetime import datetime
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session, text
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import create_db, engine
import models  # noqa: F401  registers tables before create_db
from routers.allergies import router as allergies_router
from routers.auth import router as auth_router
from routers.interactions import router as interactions_router
from routers.medical_history import router as medical_history_router
from routers.medications import router as medications_router
from routers.prescriptions import UPLOAD_DIR, router as prescriptions_router
from routers.profile import router as profile_router

logger = logging.getLogger("rxguard")


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db()
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(title="RxGuard", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("Request failed for %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(part) for part in first.get("loc", []) if part != "body")
    message = first.get("msg") or "Invalid request"
    return JSONResponse(
        status_code=422,
        content={"error": f"{loc}: {message}" if loc else message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error for %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.middleware("http")
async def no_cache_api_responses(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(
        (
            "/auth",
            "/profile",
            "/medications",
            "/allergies",
            "/medical-history",
            "/prescriptions",
            "/interactions",
            "/api/v1/",
        )
    ):
        response.headers["Cache-Control"] = "no-store, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
    return response


for _router in (
    auth_router,
    profile_router,
    medications_router,
    allergies_router,
    medical_history_router,
    prescriptions_router,
    interactions_router,
):
    app.include_router(_router)
    app.include_router(_router, prefix="/api/v1")


@app.get("/health")
def health():
    try:
        with Session(engine) as session:
            session.exec(text("SELECT 1"))
        return {
            "status": "ok",
            "database": "connected",
            "timestamp": datetime.utcnow().isoformat(),
        }
    except Exception:
        return JSONResponse(status_code=500, content={"status": "error"})
