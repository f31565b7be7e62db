"""Merge raw country entries with the exchange-rate table.

Everything here is pure: no network, no database. ``reconcile`` turns one raw
entry into a draft plus either a persistable ``CountryRecord`` or the reason
it was skipped; ``reconcile_all`` does the same for a whole payload and logs
the skips.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pydantic

from logger import get_logger
from schemas import CountryDraft, CountryRecord, name_key

logger = get_logger(__name__)

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


def random_multiplier() -> int:
    """Illustrative GDP multiplier, redrawn for every record on every refresh."""
    return random.randint(MULTIPLIER_MIN, MULTIPLIER_MAX)


@dataclass
class ReconcileResult:
    draft: CountryDraft
    record: Optional[CountryRecord] = None
    skip_reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.record is not None


@dataclass
class ReconcileReport:
    records: List[CountryRecord] = field(default_factory=list)
    skipped: List[Tuple[Optional[str], str]] = field(default_factory=list)


def _clean_name(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_population(value: Any) -> Optional[int]:
    # bool is an int subclass; a float is only accepted when integral
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value >= 0:
        return value
    return None


def _first_currency_code(currencies: Any) -> Optional[str]:
    if not isinstance(currencies, list) or not currencies:
        return None
    first = currencies[0]
    code = first.get("code") if isinstance(first, dict) else None
    if isinstance(code, str) and code.strip():
        return code.strip()
    return None


def _lookup_rate(rates: Dict[str, Any], code: str) -> Optional[float]:
    value = rates.get(code)
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    return rate if rate > 0 else None


def _skip_reason(exc: pydantic.ValidationError) -> str:
    fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
    return "invalid " + ", ".join(fields)


def reconcile(
    raw: Dict[str, Any],
    rates: Dict[str, Any],
    refreshed_at: datetime,
    multiplier: Callable[[], int] = random_multiplier,
) -> ReconcileResult:
    name = _clean_name(raw.get("name"))
    population = _as_population(raw.get("population"))
    currency_code = _first_currency_code(raw.get("currencies"))

    exchange_rate = None
    estimated_gdp = None
    if currency_code is None:
        # no currency at all is reported as zero, not as unknown
        estimated_gdp = 0.0
    else:
        exchange_rate = _lookup_rate(rates, currency_code)
        if exchange_rate is not None and population is not None:
            estimated_gdp = population * multiplier() / exchange_rate

    draft = CountryDraft(
        name=name,
        capital=_optional_str(raw.get("capital")),
        region=_optional_str(raw.get("region")),
        population=population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=_optional_str(raw.get("flag")),
        last_refreshed_at=refreshed_at,
    )

    missing = [f for f in ("name", "population", "currency_code") if getattr(draft, f) is None]
    if missing:
        return ReconcileResult(draft=draft, skip_reason="missing " + ", ".join(missing))

    try:
        record = CountryRecord.model_validate(draft.model_dump())
    except pydantic.ValidationError as exc:
        return ReconcileResult(draft=draft, skip_reason=_skip_reason(exc))
    return ReconcileResult(draft=draft, record=record)


def reconcile_all(
    raws: Iterable[Dict[str, Any]],
    rates: Dict[str, Any],
    refreshed_at: datetime,
    multiplier: Callable[[], int] = random_multiplier,
) -> ReconcileReport:
    """Reconcile a whole catalog payload, keeping input order.

    A name seen twice keeps the later entry in the earlier entry's position.
    """
    report = ReconcileReport()
    positions: Dict[str, int] = {}

    for raw in raws:
        if not isinstance(raw, dict):
            report.skipped.append((None, "not an object"))
            logger.warning("Skipping invalid country entry: not an object")
            continue

        result = reconcile(raw, rates, refreshed_at, multiplier)
        if not result.accepted:
            report.skipped.append((result.draft.name, result.skip_reason))
            logger.warning("Skipping invalid country %r: %s", result.draft.name, result.skip_reason)
            continue

        key = name_key(result.record.name)
        if key in positions:
            logger.warning("Duplicate country %r in payload; keeping the later entry", result.record.name)
            report.records[positions[key]] = result.record
        else:
            positions[key] = len(report.records)
            report.records.append(result.record)

    logger.info("Reconciled %d countries, skipped %d", len(report.records), len(report.skipped))
    return report
