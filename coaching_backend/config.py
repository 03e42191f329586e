import os
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote_plus
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

SPECIAL_PASSWORD_CHARS = ['@', '#', '$', '%', '&', '+', '=']


def encode_mongo_url(mongo_url: str) -> str:
    """Percent-encode the password part of a MongoDB URL when it holds special characters."""
    if '@' not in mongo_url or '://' not in mongo_url:
        return mongo_url
    protocol_end = mongo_url.find('://') + 3
    at_pos = mongo_url.rfind('@')
    if at_pos <= protocol_end:
        return mongo_url
    user_pass = mongo_url[protocol_end:at_pos]
    if ':' not in user_pass:
        return mongo_url
    username, password = user_pass.split(':', 1)
    if not any(c in password for c in SPECIAL_PASSWORD_CHARS):
        return mongo_url
    return mongo_url[:protocol_end] + f"{username}:{quote_plus(password)}" + mongo_url[at_pos:]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.environ.get(name, default).strip()
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or ["*"]


class Settings(BaseModel):
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "coaching_db"
    jwt_secret: Optional[str] = None
    jwt_expires_minutes: int = 60 * 24 * 7
    cookie_secure: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    report_renderer: str = "auto"
    report_font_path: Optional[str] = None
    report_timezone: str = "Europe/Istanbul"
    report_retry_delay: float = 1.0
    enable_scheduler: bool = True
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.report_timezone)

    @classmethod
    def from_env(cls) -> "Settings":
        mongo_url = os.environ.get('MONGO_URL')
        if not mongo_url:
            raise ValueError("MONGO_URL environment variable is not set. Please check your .env file.")
        return cls(
            mongo_url=encode_mongo_url(mongo_url),
            db_name=os.environ.get('DB_NAME', 'coaching_db'),
            jwt_secret=os.environ.get("JWT_SECRET"),
            jwt_expires_minutes=int(os.environ.get("JWT_EXPIRES_MINUTES", 60 * 24 * 7)),
            cookie_secure=_env_bool("COOKIE_SECURE", False),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            report_renderer=os.environ.get("REPORT_RENDERER", "auto").strip().lower(),
            report_font_path=os.environ.get("REPORT_FONT_PATH") or None,
            report_timezone=os.environ.get("REPORT_TIMEZONE", "Europe/Istanbul"),
            report_retry_delay=float(os.environ.get("REPORT_RETRY_DELAY", "1.0")),
            enable_scheduler=_env_bool("ENABLE_SCHEDULER", True),
            twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=os.environ.get("TWILIO_PHONE_NUMBER"),
            sendgrid_api_key=os.environ.get("SENDGRID_API_KEY"),
            sender_email=os.environ.get("SENDER_EMAIL"),
            sender_name=os.environ.get("SENDER_NAME"),
        )
