"""Equity math: vesting, dilution, ownership and conversion.

Pure functions only. Rows from ``models`` are accepted anywhere a grant, pool
or cap-table entry is expected; only the attributes named in each docstring
are read.
"""

import calendar
import math
from datetime import date
from typing import Iterable, Optional

from .errors import InvalidInput
from .models import ShareCalculationMethod


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole calendar months, clamping to the end of the month.

    Jan 31 + 1 month is Feb 28 (or 29), never a day in March.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def vested_shares(grant, as_of: date) -> int:
    """Shares of ``grant`` vested on ``as_of``.

    Reads ``vesting_start_date``, ``vested_shares``, ``cliff_months``,
    ``vesting_duration_months`` and ``total_shares``.

    Without a vesting start date the cached ``vested_shares`` is returned as is.
    Nothing vests before the cliff date; after it the vested fraction is the
    elapsed whole months over the duration, capped at 1 and floored to a
    whole share. A zero duration vests everything once the cliff has passed.
    """
    if grant.vesting_start_date is None:
        return int(grant.vested_shares or 0)

    start = grant.vesting_start_date
    cliff_date = add_months(start, grant.cliff_months or 0)
    if as_of < cliff_date:
        return 0

    duration = grant.vesting_duration_months or 0
    if duration <= 0:
        fraction = 1.0
    else:
        fraction = min(max(months_between(start, as_of), 0) / duration, 1.0)
    return int(math.floor(grant.total_shares * fraction))


def issued_shares(entries: Iterable) -> float:
    """Sum of ``shares`` over cap-table entries whose equity type is not ``option``."""
    return sum(float(e.shares) for e in entries if e.equity_type != "option")


def fully_diluted_shares(issued: float, grants: Iterable, option_pool_reserves: Iterable) -> float:
    """Issued shares plus every grant's and every option pool's ``total_shares``."""
    granted = sum(g.total_shares for g in grants)
    reserved = sum(p.total_shares for p in option_pool_reserves)
    return issued + granted + reserved


def ownership_denominator(method: str, issued: float, fully_diluted: float) -> float:
    if method == ShareCalculationMethod.FULLY_DILUTED:
        return fully_diluted
    if method == ShareCalculationMethod.ISSUED_OUTSTANDING:
        return issued
    raise InvalidInput(f"unknown share calculation method: {method}", {"method": method})


def ownership_percentage(holder_shares: float, total_shares: float) -> float:
    if not total_shares:
        return 0.0
    return holder_shares / total_shares * 100


def conversion_shares(principal: float, conversion_price_per_share: float) -> float:
    """Shares received for ``principal`` at the given price. Not rounded."""
    if conversion_price_per_share is None or conversion_price_per_share <= 0:
        raise InvalidInput(
            "conversion price per share must be positive",
            {"conversion_price_per_share": conversion_price_per_share},
        )
    return principal / conversion_price_per_share


def conversion_price(
    round_price: float,
    discount_rate: Optional[float] = None,
    valuation_cap: Optional[float] = None,
    capitalization: Optional[float] = None,
) -> float:
    """Effective price for a SAFE or note converting in a priced round.

    The holder gets the better (lower) of the round price, the discounted
    round price and the cap price. ``discount_rate`` is a percentage
    (20 means 20%). The cap price is ``valuation_cap / capitalization`` and is
    only considered when both are given and positive.
    """
    if round_price is None or round_price <= 0:
        raise InvalidInput("round price per share must be positive", {"round_price": round_price})

    candidates = [round_price]
    if discount_rate:
        if not 0 < discount_rate < 100:
            raise InvalidInput("discount rate must be between 0 and 100", {"discount_rate": discount_rate})
        candidates.append(round_price * (1 - discount_rate / 100))
    if valuation_cap and capitalization and capitalization > 0:
        candidates.append(valuation_cap / capitalization)
    return min(candidates)
