import os
from dotenv import load_dotenv

# Load environment variables dari file .env
load_dotenv()


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# --- PANEL DATABASE ---
# Database internal panel (users, projects, members). Default SQLite biar gampang dev.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dbdesk.db")

# --- AUTH ---
SECRET_KEY = os.getenv("SECRET_KEY", "UNSAFE_DEFAULT_KEY_CHANGE_THIS")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))

FIRST_SUPERUSER = os.getenv("FIRST_SUPERUSER", "admin")
FIRST_SUPERUSER_PASSWORD = os.getenv("FIRST_SUPERUSER_PASSWORD", "password")
FIRST_SUPERUSER_EMAIL = os.getenv("FIRST_SUPERUSER_EMAIL", "admin@example.com")

# --- EXTERNAL TARGET DATABASES ---
# Batas waktu connect ke database project (detik). Target bisa saja mati.
DB_CONNECT_TIMEOUT = int(os.getenv("DB_CONNECT_TIMEOUT", 5))

# Pooling per target (opsional). Default mati: tiap request bikin engine baru lalu dibuang.
DB_POOL_ENABLED = _as_bool(os.getenv("DB_POOL_ENABLED", "false"))
DB_POOL_IDLE_SECONDS = int(os.getenv("DB_POOL_IDLE_SECONDS", 300))

# Ukuran halaman tabel generic (fix)
PAGE_SIZE = 15

# --- HTTP ---
RATE_LIMIT_ENABLED = _as_bool(os.getenv("RATE_LIMIT_ENABLED", "true"))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
