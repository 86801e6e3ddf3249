from __future__ import annotations

import re
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

MESES = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)

NUP_DIGITS = 17
_NON_DIGIT = re.compile(r"\D")

# Timestamps are stored in UTC; month boundaries and "today" follow Ceará local time.
LOCAL_TIMEZONE = ZoneInfo("America/Fortaleza")


def local_now() -> datetime:
    return datetime.now(LOCAL_TIMEZONE)


def local_today() -> date:
    return local_now().date()


def to_local(value: datetime) -> datetime:
    """Naive values are read as UTC. Returns a naive datetime in local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(LOCAL_TIMEZONE).replace(tzinfo=None)


def format_date(value: date | datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y")


def format_datetime(value: datetime | None) -> str:
    if value is None:
        return "-"
    return to_local(value).strftime("%d/%m/%Y %H:%M")


def month_label(ano: int, mes: int) -> str:
    return f"{MESES[mes - 1]} de {ano}"


def month_key(ano: int, mes: int) -> str:
    return f"{ano:04d}-{mes:02d}"


def shift_month(ano: int, mes: int, delta: int) -> tuple[int, int]:
    index = ano * 12 + (mes - 1) + delta
    return index // 12, index % 12 + 1


def format_nup(value: str | None) -> str:
    """Apply the XXXXX.XXXXXX/XXXX-XX mask to whatever digits are present."""
    digits = _NON_DIGIT.sub("", value or "")[:NUP_DIGITS]
    out = digits[:5]
    if len(digits) > 5:
        out += "." + digits[5:11]
    if len(digits) > 11:
        out += "/" + digits[11:15]
    if len(digits) > 15:
        out += "-" + digits[15:]
    return out


def normalize_nup(value: str | None) -> str | None:
    raw = (value or "").strip()
    if not raw:
        return None
    digits = _NON_DIGIT.sub("", raw)
    if len(digits) != NUP_DIGITS:
        raise ValueError("NUP inválido: informe 17 dígitos no formato XXXXX.XXXXXX/XXXX-XX")
    return format_nup(digits)


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "on", "sim", "yes"}
