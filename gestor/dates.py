"""
Date and adjustment period utilities.

Month arithmetic uses dateutil's relativedelta, which rolls over year
boundaries and clamps day-of-month overflow to the last day of the target
month (Jan 31 + 3 months -> Apr 30).
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta


class AdjustmentPeriod(str, Enum):
    """How often a subscription price is indexed."""
    QUARTERLY = "trimestral"
    FOUR_MONTHLY = "cuatrimestral"
    SEMIANNUAL = "semestral"

    @property
    def months(self) -> int:
        return _PERIOD_MONTHS[self]

    @classmethod
    def parse(cls, value: Union["AdjustmentPeriod", str]) -> "AdjustmentPeriod":
        """Accept the stored Spanish names and the English aliases."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        try:
            return _PERIOD_ALIASES[key]
        except KeyError:
            raise ValueError(
                f"Unknown adjustment period: {value!r}. "
                f"Allowed: {sorted(_PERIOD_ALIASES)}"
            ) from None


_PERIOD_MONTHS = {
    AdjustmentPeriod.QUARTERLY: 3,
    AdjustmentPeriod.FOUR_MONTHLY: 4,
    AdjustmentPeriod.SEMIANNUAL: 6,
}

_PERIOD_ALIASES = {
    "trimestral": AdjustmentPeriod.QUARTERLY,
    "quarterly": AdjustmentPeriod.QUARTERLY,
    "cuatrimestral": AdjustmentPeriod.FOUR_MONTHLY,
    "four_monthly": AdjustmentPeriod.FOUR_MONTHLY,
    "fourmonthly": AdjustmentPeriod.FOUR_MONTHLY,
    "semestral": AdjustmentPeriod.SEMIANNUAL,
    "semiannual": AdjustmentPeriod.SEMIANNUAL,
}


def parse_date(value: Union[date, datetime, str]) -> date:
    """Coerce an ISO string or datetime to a plain date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def advance(
    start: Union[date, datetime, str],
    period: Union[AdjustmentPeriod, str],
) -> date:
    """
    Next adjustment date: start plus the period's calendar months.

    >>> advance("2024-01-15", "trimestral")
    datetime.date(2024, 4, 15)
    >>> advance("2024-01-31", "trimestral")
    datetime.date(2024, 4, 30)
    """
    return parse_date(start) + relativedelta(months=AdjustmentPeriod.parse(period).months)


def next_adjustment_date(
    last_adjustment: Optional[date],
    period: Optional[AdjustmentPeriod],
) -> Optional[date]:
    if last_adjustment is None or period is None:
        return None
    return advance(last_adjustment, period)
