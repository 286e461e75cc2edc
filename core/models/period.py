# ============================================================================
# PERIOD MODEL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core model - Fiscal quarter
# PURPOSE: Totally ordered (year, quarter) value with year rollover
# CREATED: 18 OCT 2026
# EXPORTS: Period
# DEPENDENCIES: pydantic
# ============================================================================
"""
Period Model

A Period is one calendar quarter. Periods are immutable, hashable and
totally ordered by (year, quarter), so candidate lists can be compared and
sorted directly.
"""

import re
from datetime import date, datetime
from functools import total_ordering
from typing import Union

from pydantic import BaseModel, Field


_KEY_PATTERN = re.compile(r"^\s*(\d{4})\s*-?\s*Q([1-4])\s*$", re.IGNORECASE)


@total_ordering
class Period(BaseModel):
    """
    One fiscal quarter.

    Examples:
        Period(year=2025, quarter=3).key       -> "2025-Q3"
        Period(year=2025, quarter=1).previous() -> Period(2024, 4)
    """

    model_config = {"frozen": True}

    year: int = Field(..., ge=1900, le=9999)
    quarter: int = Field(..., ge=1, le=4)

    # =========================================================================
    # ORDERING
    # =========================================================================
    def __lt__(self, other: "Period") -> bool:
        if not isinstance(other, Period):
            return NotImplemented
        return (self.year, self.quarter) < (other.year, other.quarter)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Period):
            return NotImplemented
        return (self.year, self.quarter) == (other.year, other.quarter)

    def __hash__(self) -> int:
        return hash((self.year, self.quarter))

    def __str__(self) -> str:
        return self.key

    # =========================================================================
    # STEPPING
    # =========================================================================
    def previous(self) -> "Period":
        """The quarter before this one (Q1 rolls back to Q4 of the prior year)."""
        if self.quarter == 1:
            return Period(year=self.year - 1, quarter=4)
        return Period(year=self.year, quarter=self.quarter - 1)

    def next(self) -> "Period":
        """The quarter after this one (Q4 rolls over to Q1 of the next year)."""
        if self.quarter == 4:
            return Period(year=self.year + 1, quarter=1)
        return Period(year=self.year, quarter=self.quarter + 1)

    # =========================================================================
    # FORMATTING
    # =========================================================================
    @property
    def key(self) -> str:
        """Stable key used in cache keys and checkpoints."""
        return f"{self.year}-Q{self.quarter}"

    @property
    def label(self) -> str:
        """Display form, e.g. 'Q3 2025'."""
        return f"Q{self.quarter} {self.year}"

    # =========================================================================
    # FACTORY METHODS
    # =========================================================================
    @classmethod
    def containing(cls, moment: Union[date, datetime]) -> "Period":
        """The quarter that contains the given date."""
        return cls(year=moment.year, quarter=(moment.month - 1) // 3 + 1)

    @classmethod
    def last_closed(cls, moment: Union[date, datetime]) -> "Period":
        """The most recently finished quarter as of the given date."""
        return cls.containing(moment).previous()

    @classmethod
    def parse(cls, value: str) -> "Period":
        """
        Parse '2025-Q3', '2025Q3' or '2025 q3'.

        Raises:
            ValueError: if the value is not a period key
        """
        match = _KEY_PATTERN.match(value or "")
        if not match:
            raise ValueError(f"Invalid period '{value}', expected YYYY-Qn")
        return cls(year=int(match.group(1)), quarter=int(match.group(2)))


__all__ = ["Period"]
