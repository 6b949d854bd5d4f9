import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import CORS_ORIGINS, DB_POOL_ENABLED, LOG_LEVEL
from app.core.init_db import init_db
from app.core.limiter import limiter

# Import Database & Models
from app.core.database import engine, Base, SessionLocal
from app.modules.users import models as user_models
from app.modules.projects import models as project_models
from app.modules.users.router import router as user_router
from app.modules.auth.router import router as auth_router
from app.modules.projects.router import router as project_router
from app.modules.tables.router import router as table_router
from app.system.connection_manager import ConnectionRegistry

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

app = FastAPI(title="DBDesk API", version="0.1.0")

# --- RATE LIMIT ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,  # Jangan pernah pakai ["*"] di production
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# --- Register Router ---
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(project_router)
app.include_router(table_router)


@app.on_event("startup")
def startup_event():
    # 1. AUTO MIGRATE (Buat tabel kalau belum ada)
    Base.metadata.create_all(bind=engine)

    # 2. POOL KONEKSI PROJECT (opsional)
    if DB_POOL_ENABLED:
        app.state.connection_registry = ConnectionRegistry()
        logger.info("[DB] Connection pooling per project enabled")

    # 3. CREATE SUPERUSER (Auto Generate)
    db = SessionLocal()
    try:
        init_db(db)
    finally:
        db.close()


@app.on_event("shutdown")
def shutdown_event():
    registry = getattr(app.state, "connection_registry", None)
    if registry is not None:
        registry.dispose_all()


@app.get("/")
def read_root():
    return {"message": "DBDesk API is Ready!"}
