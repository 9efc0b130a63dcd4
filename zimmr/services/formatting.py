"""
Display formatting shared by emails and PDFs.

Customers are German-speaking: dates are rendered as dd.mm.YYYY in the
configured display zone and money as "1.234,56 €".
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from zimmr.config import settings
from zimmr.services.time_tracking import ensure_utc, quantize_money


def _local(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(ZoneInfo(settings.display_timezone))


def format_date_de(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return _local(value).strftime("%d.%m.%Y")


def format_datetime_de(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return _local(value).strftime("%d.%m.%Y %H:%M")


def format_money_de(value: Optional[Decimal]) -> str:
    amount = quantize_money(value or Decimal("0"))
    # 1,234.56 → 1.234,56
    text = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{text} €"


def safe_filename(value: str) -> str:
    """Keep letters, digits, dash and underscore; everything else becomes '_'."""
    return re.sub(r"[^A-Za-z0-9_-]", "_", value)
