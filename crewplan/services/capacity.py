"""
Free-capacity placeholders for crew-days.

Works on the in-memory ledger only: a list of schedule item dicts as returned
by the gateways. For every (crew_id, date) key with at least one real job whose
total duration is under the workday length, exactly one FREE_SLOT placeholder
holds the remainder. Placeholders are never persisted.

None of these functions raise; malformed durations count as zero.
"""
import math
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import settings

PLACEHOLDER_PREFIX = "free_"
PLACEHOLDER_ADDRESS = "Available for booking"
PLACEHOLDER_COLOR = "free"

CrewDay = Tuple[str, date]


def _day(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _safe_duration(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(hours) or math.isinf(hours):
        return 0.0
    return hours


def is_placeholder(item: Dict) -> bool:
    return item.get("customer") == settings.free_slot_customer or str(item.get("id") or "").startswith(PLACEHOLDER_PREFIX)


def is_real_job(item: Dict) -> bool:
    return item.get("type") == "job" and not is_placeholder(item)


def crew_day(item: Dict) -> Optional[CrewDay]:
    crew_id = item.get("crew_id")
    day = _day(item.get("date"))
    if not crew_id or day is None:
        return None
    return (crew_id, day)


def used_duration(items: Iterable[Dict], key: CrewDay) -> Tuple[float, int]:
    """Total hours and count of real jobs on a crew-day."""
    total = 0.0
    count = 0
    for item in items:
        if is_real_job(item) and crew_day(item) == key:
            total += _safe_duration(item.get("duration"))
            count += 1
    return total, count


def make_placeholder(key: CrewDay, hours: float, depot_id: Optional[str] = None) -> Dict:
    crew_id, day = key
    return {
        "id": f"{PLACEHOLDER_PREFIX}{crew_id}_{day.isoformat()}",
        "type": "job",
        "date": day,
        "crew_id": crew_id,
        "depot_id": depot_id,
        "customer": settings.free_slot_customer,
        "address": PLACEHOLDER_ADDRESS,
        "color": PLACEHOLDER_COLOR,
        "duration": hours,
        "status": "approved",
        "job_status": "free",
    }


def reconcile(items: List[Dict], keys: Iterable[Optional[CrewDay]]) -> List[Dict]:
    """
    Return a new ledger where each given crew-day has the right placeholder.

    Stale placeholders for a key are dropped first, then at most one is added.
    """
    keys = {k for k in keys if k is not None}
    if not keys:
        return list(items)

    result = [i for i in items if not (is_placeholder(i) and crew_day(i) in keys)]
    workday = float(settings.workday_hours)

    for key in sorted(keys, key=lambda k: (k[0], k[1])):
        total, count = used_duration(result, key)
        if count == 0 or total >= workday:
            continue
        depot_id = next(
            (i.get("depot_id") for i in result if is_real_job(i) and crew_day(i) == key),
            None,
        )
        result.append(make_placeholder(key, workday - total, depot_id))
    return result


def reconcile_mutation(items: List[Dict], item: Dict, previous: Optional[Dict] = None) -> List[Dict]:
    """Reconcile after one mutation: the item's key and, for a move, its old key."""
    keys = [crew_day(item)]
    if previous is not None:
        keys.append(crew_day(previous))
    return reconcile(items, keys)


def reconcile_all(items: List[Dict]) -> List[Dict]:
    keys = {crew_day(i) for i in items}
    return reconcile(items, keys)


def placeholders(items: Iterable[Dict]) -> List[Dict]:
    return [i for i in items if is_placeholder(i)]
