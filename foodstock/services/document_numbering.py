"""
Document Numbering
Sequential numbers for deliveries, issues, transfers and NCRs
"""
import re
from datetime import date
from typing import Optional
from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from foodstock.models import Delivery, Issue, Transfer, NCR

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def sanitize_location_name(name: str, max_length: int = 20) -> str:
    """Upper-case, spaces to hyphens, drop anything outside A-Z 0-9 and '-'"""
    cleaned = re.sub(r"\s+", "-", name.strip().upper())
    cleaned = re.sub(r"[^A-Z0-9-]", "", cleaned)
    return cleaned[:max_length]


def format_date_for_document_number(value: date) -> str:
    """15-Jan-2025"""
    return f"{value.day:02d}-{MONTHS[value.month - 1]}-{value.year}"


class DocumentNumberService:
    """Next-number generation; call inside the posting transaction"""

    def __init__(self, db: Session):
        self.db = db

    def _last_number(self, column, prefix: str) -> int:
        """Highest numeric suffix in use under prefix, 0 when none"""
        suffix = func.substr(column, len(prefix) + 1)
        last = self.db.query(func.max(cast(suffix, Integer))).filter(column.like(f"{prefix}%")).scalar()
        return int(last or 0)

    def _next_yearly(self, column, prefix: str, year: Optional[int] = None) -> str:
        year = year or date.today().year
        full_prefix = f"{prefix}-{year}-"
        return f"{full_prefix}{self._last_number(column, full_prefix) + 1:03d}"

    def next_issue_number(self, year: Optional[int] = None) -> str:
        return self._next_yearly(Issue.issue_no, "ISS", year)

    def next_transfer_number(self, year: Optional[int] = None) -> str:
        return self._next_yearly(Transfer.transfer_no, "TRF", year)

    def next_ncr_number(self, year: Optional[int] = None) -> str:
        return self._next_yearly(NCR.ncr_no, "NCR", year)

    def next_delivery_number(self, location_name: str, delivery_date: date) -> str:
        """DLV-{LOCATION}-{DD-Mon-YYYY}-NN, numbered per location and day"""
        prefix = (
            f"DLV-{sanitize_location_name(location_name)}-"
            f"{format_date_for_document_number(delivery_date)}-"
        )
        return f"{prefix}{self._last_number(Delivery.delivery_no, prefix) + 1:02d}"
