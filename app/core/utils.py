import re
from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings

PHONE_PATTERN = re.compile(r"^\d{10}$")


def clinic_today() -> date:
    # Server-stamped date, so every front-desk client shares the same "today"
    return datetime.now(ZoneInfo(settings.CLINIC_TIMEZONE)).date()


def clean_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_valid_phone(phone: str) -> bool:
    # ASCII digits only; str.isdigit() would accept other scripts
    return bool(PHONE_PATTERN.fullmatch(phone)) and phone.isascii()
