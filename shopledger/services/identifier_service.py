"""Shop-scoped business identifier generation.

Synopsis:
Produce human-readable invoice and GRN numbers that are unique per shop at
write time. Two named strategies are available; both consult the database
through the resilient gateway, and both rely on a compound unique constraint
on (shop, identifier) as the final guarantee.

Glossary:
- Sequential-prefixed: ``{PREFIX}-{YEAR}-{NNNN}``, next number after the
  highest existing one for the shop, prefix and year.
- Time+random: 7 trailing digits of the epoch-millisecond clock followed by 3
  random digits; retried with linear backoff when the candidate exists.
- Fallback: last 10 digits of the epoch-millisecond clock, returned unchecked
  once every time+random attempt collided.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Callable, Optional

from sqlalchemy import func

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils

__all__ = [
    "IDENTIFIER_STRATEGIES",
    "SequentialPrefixedStrategy",
    "TimeRandomStrategy",
    "backoff_delay_ms",
    "build_identifier_strategy",
    "build_time_random_candidate",
    "fallback_identifier",
    "format_sequential_identifier",
]

logger = logging.getLogger(__name__)

MS_PART_MODULUS = 10_000_000  # 7 digits; cycles every ~2.78 hours
MS_PART_WIDTH = 7
RANDOM_PART_RANGE = 1000
RANDOM_PART_WIDTH = 3
IDENTIFIER_WIDTH = MS_PART_WIDTH + RANDOM_PART_WIDTH
BACKOFF_STEP_MS = 5
DEFAULT_MAX_RETRIES = 5
SEQUENCE_WIDTH = 4

_PREFIX_PATTERN = re.compile(r"^[A-Z0-9]+$")

ExistsLookup = Callable[[int, str], bool]
HighestLookup = Callable[[int, str], Optional[str]]
CountLookup = Callable[[int, str], int]


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


# --- Time+random building blocks ---
# Purpose: Keep the arithmetic of each identifier part independently testable.
def build_time_random_candidate(now_ms: int, random_value: int) -> str:
    ms_part = f"{now_ms % MS_PART_MODULUS:0{MS_PART_WIDTH}d}"
    random_part = f"{random_value % RANDOM_PART_RANGE:0{RANDOM_PART_WIDTH}d}"
    return f"{ms_part}{random_part}"


def backoff_delay_ms(attempt: int) -> int:
    """Linear backoff for 0-based ``attempt``: 5, 10, 15, 20, 25 ms."""
    return BACKOFF_STEP_MS * (attempt + 1)


def fallback_identifier(now_ms: int) -> str:
    return str(now_ms)[-IDENTIFIER_WIDTH:].zfill(IDENTIFIER_WIDTH)


def format_sequential_identifier(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


class TimeRandomStrategy:
    """Time+random identifiers with a bounded existence-check retry loop."""

    name = "time_random"

    def __init__(
        self,
        exists: ExistsLookup,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        now_ms: Callable[[], int] = _epoch_ms,
        randbelow: Callable[[int], int] = secrets.randbelow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._exists = exists
        self.max_retries = max(int(max_retries), 0)
        self._now_ms = now_ms
        self._randbelow = randbelow
        self._sleep = sleep

    def candidate(self) -> str:
        return build_time_random_candidate(self._now_ms(), self._randbelow(RANDOM_PART_RANGE))

    def generate(self, shop_id: int) -> str:
        for attempt in range(self.max_retries):
            candidate = self.candidate()
            if not self._exists(shop_id, candidate):
                return candidate
            delay_ms = backoff_delay_ms(attempt)
            logger.debug(
                "Identifier %s already used for shop %s (attempt %s/%s); retrying in %sms",
                candidate,
                shop_id,
                attempt + 1,
                self.max_retries,
                delay_ms,
            )
            self._sleep(delay_ms / 1000)

        fallback = fallback_identifier(self._now_ms())
        logger.warning(
            "Identifier retries exhausted for shop %s after %s attempts; using fallback %s",
            shop_id,
            self.max_retries,
            fallback,
        )
        return fallback


class SequentialPrefixedStrategy:
    """``{PREFIX}-{YEAR}-{NNNN}`` numbering derived from the highest existing identifier.

    Two concurrent callers can compute the same number; the unique constraint
    and the caller's conflict retry resolve it.
    """

    name = "sequential"

    def __init__(
        self,
        highest: HighestLookup,
        count: CountLookup,
        *,
        default_prefix: str = "GRN",
        timezone_for: Callable[[int], Optional[str]] | None = None,
    ):
        self._highest = highest
        self._count = count
        self.default_prefix = self.normalize_prefix(default_prefix)
        self._timezone_for = timezone_for

    @staticmethod
    def normalize_prefix(prefix: str | None) -> str:
        normalized = (prefix or "").strip().upper()
        if not _PREFIX_PATTERN.match(normalized):
            raise ValueError(f"Identifier prefix must be alphanumeric, got {prefix!r}")
        return normalized

    def _resolve_year(self, shop_id: int, year: int | None) -> int:
        if year is not None:
            return int(year)
        tz_name = self._timezone_for(shop_id) if self._timezone_for else None
        return TimezoneUtils.current_year(tz_name)

    def next_sequence(self, shop_id: int, stem: str) -> int:
        highest = self._highest(shop_id, stem)
        if not highest:
            return 1
        suffix = highest[len(stem):]
        try:
            return int(suffix) + 1
        except ValueError:
            logger.warning("Unparseable identifier %r under %s; falling back to count", highest, stem)
            return self._count(shop_id, stem) + 1

    def generate(self, shop_id: int, prefix: str | None = None, year: int | None = None) -> str:
        resolved_prefix = self.normalize_prefix(prefix) if prefix else self.default_prefix
        resolved_year = self._resolve_year(shop_id, year)
        stem = f"{resolved_prefix}-{resolved_year}-"
        return format_sequential_identifier(
            resolved_prefix, resolved_year, self.next_sequence(shop_id, stem)
        )


IDENTIFIER_STRATEGIES = {
    SequentialPrefixedStrategy.name: SequentialPrefixedStrategy,
    TimeRandomStrategy.name: TimeRandomStrategy,
}


# --- Database-backed lookups ---
# Purpose: Bind strategies to a model column, routing every query through the gateway.
def _column_lookups(model, column_name: str, gateway):
    column = getattr(model, column_name)

    def exists(shop_id: int, identifier: str) -> bool:
        return gateway.execute(
            lambda: db.session.query(model.id)
            .filter(model.shop_id == shop_id, column == identifier)
            .first()
            is not None
        )

    def highest(shop_id: int, stem: str) -> Optional[str]:
        return gateway.execute(
            lambda: db.session.query(column)
            .filter(model.shop_id == shop_id, column.like(f"{stem}%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
            .scalar()
        )

    def count(shop_id: int, stem: str) -> int:
        return gateway.execute(
            lambda: db.session.query(func.count(model.id))
            .filter(model.shop_id == shop_id, column.like(f"{stem}%"))
            .scalar()
            or 0
        )

    return exists, highest, count


def _shop_timezone_lookup(gateway):
    from ..models import Shop

    def timezone_for(shop_id: int) -> Optional[str]:
        return gateway.execute(
            lambda: db.session.query(Shop.timezone).filter(Shop.id == shop_id).scalar()
        )

    return timezone_for


def build_identifier_strategy(name: str, model, column_name: str, gateway, **options):
    """Construct the named strategy over ``model.column_name`` using ``gateway``."""
    if name not in IDENTIFIER_STRATEGIES:
        raise ValueError(f"Unknown identifier strategy {name!r}; expected one of {sorted(IDENTIFIER_STRATEGIES)}")

    exists, highest, count = _column_lookups(model, column_name, gateway)
    if name == TimeRandomStrategy.name:
        return TimeRandomStrategy(exists, **options)
    options.setdefault("timezone_for", _shop_timezone_lookup(gateway))
    return SequentialPrefixedStrategy(highest, count, **options)
