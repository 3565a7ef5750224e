import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ai.app import router as ai_router
from api.records import router as records_router
from config import CORS_ALLOWED_ORIGINS
from database import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("[DB] Tables ready")
    yield


app = FastAPI(title="One Gate API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records_router)
app.include_router(ai_router)


@app.get("/health")
async def health():
    return {"status": "ok", "message": "Server is running"}


@app.get("/health/db")
async def health_db():
    try:
        with engine.connect() as conn:
            ok = conn.execute(text("SELECT 1")).scalar() == 1
        return {"ok": ok}
    except Exception as e:
        logger.error(f"[DB] Health check failed: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
