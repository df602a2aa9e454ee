# canteen/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env locally (safe in prod too)
load_dotenv()


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./canteen.db")
    upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
    client_url: str = os.getenv("CLIENT_URL", "http://localhost:3000")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")


settings = Settings()
