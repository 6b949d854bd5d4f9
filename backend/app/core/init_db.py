import logging
from sqlalchemy.orm import Session
from app.core.config import FIRST_SUPERUSER, FIRST_SUPERUSER_PASSWORD, FIRST_SUPERUSER_EMAIL
from app.modules.users import models
from app.core.security import get_password_hash

logger = logging.getLogger(__name__)


def init_db(db: Session):
    """
    Fungsi ini akan dipanggil setiap kali server start.
    Tugasnya mengecek apakah Admin sudah ada.
    """
    username = FIRST_SUPERUSER

    # 1. Cek apakah user admin sudah ada di database?
    user = db.query(models.User).filter(models.User.username == username).first()

    if user:
        # Kalau sudah ada, diam saja
        logger.info("[INIT] Superuser '%s' already exists. Skipping creation.", username)
        return user

    logger.info("[INIT] Admin user not found. Creating default superuser: %s", username)

    # 2. Buat Admin Baru
    user = models.User(
        username=username,
        hashed_password=get_password_hash(FIRST_SUPERUSER_PASSWORD),
        email=FIRST_SUPERUSER_EMAIL,
        role="admin",  # <--- PENTING: Role langsung Admin
        is_active=True,
    )

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("[INIT] Superuser created successfully!")
    return user
