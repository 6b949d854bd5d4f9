from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import RATE_LIMIT_ENABLED

# Inisialisasi Limiter di sini (dipasang ke app.state di main.py)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
