import os
from pathlib import Path
from pydantic import BaseModel
from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
if ENV_PATH.exists():
    # ensure .env values override empty/previous env
    load_dotenv(ENV_PATH, override=True)
    # BOM-safe fallback: if key was \ufeffDATABASE_URL
    if not os.getenv("DATABASE_URL"):
        for line in ENV_PATH.read_text(encoding="utf-8").splitlines():
            line = line.lstrip("\ufeff")
            if line.startswith("DATABASE_URL="):
                os.environ["DATABASE_URL"] = line.split("=", 1)[1].strip()
                break

class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./lucky_draw.db")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev_change_me")
    access_token_hours: int = int(os.getenv("ACCESS_TOKEN_HOURS", "24"))

    # lucky draw
    daily_spin_limit: int = int(os.getenv("DAILY_SPIN_LIMIT", "3"))
    claim_expiry_days: int = int(os.getenv("CLAIM_EXPIRY_DAYS", "7"))
    draw_timezone: str = os.getenv("DRAW_TIMEZONE", "Asia/Kolkata")

    # bounded waits for row locks / statements (postgres); busy timeout on sqlite
    db_lock_timeout_ms: int = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))
    db_statement_timeout_ms: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))

    allowed_origins: list[str] = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
    ]
    allowed_origin_regex: str | None = os.getenv("ALLOWED_ORIGIN_REGEX") or None

    admin_password: str = os.getenv("ADMIN_PASSWORD", "")
    admin_password_hash: str = os.getenv("ADMIN_PASSWORD_HASH", "")  # bcrypt hash
    admin_token_hours: int = int(os.getenv("ADMIN_TOKEN_HOURS", "24"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
