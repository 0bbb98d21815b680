import os
from dotenv import load_dotenv

load_dotenv()

# -----------------------
# Database Config
# -----------------------
DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()

if DB_TYPE == "postgres":
    DATABASE_URL = os.getenv("DATABASE_URL")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL is required for Postgres setup")
elif DB_TYPE == "sqlite":
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./bioharvest.db")
else:
    raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")

DB_SSL = os.getenv("DB_SSL", "false").lower() in ("1", "true", "yes")

# -----------------------
# JWT Config
# -----------------------
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError("JWT_SECRET environment variable must be set")

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES", "120"))

# -----------------------
# App Config
# -----------------------
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CURRENCY = os.getenv("CURRENCY", "USD")

# Minimum share of completed sections (percent) before a certificate can be issued
CERTIFICATE_MIN_PROGRESS = int(os.getenv("CERTIFICATE_MIN_PROGRESS", "80"))
if not 0 < CERTIFICATE_MIN_PROGRESS <= 100:
    raise ValueError("CERTIFICATE_MIN_PROGRESS must be between 1 and 100")
