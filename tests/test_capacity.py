"""
Tests for FREE_SLOT placeholder reconciliation.

Validates:
- Real job hours plus placeholder always fill the workday
- No placeholder without real work, none once the day is full
- Moves reconcile both the old and the new crew-day
- Bad durations count as zero instead of raising
"""

from datetime import date

from crewplan.services import capacity


def job(item_id, hours, crew="crew-1", day=date(2024, 6, 10), **extra):
    item = {
        "id": item_id,
        "type": "job",
        "date": day,
        "crew_id": crew,
        "depot_id": "depot-1",
        "customer": "Acme",
        "duration": hours,
    }
    item.update(extra)
    return item


def placeholder_hours(items, crew="crew-1", day=date(2024, 6, 10)):
    found = [p for p in capacity.placeholders(items) if capacity.crew_day(p) == (crew, day)]
    assert len(found) <= 1, "at most one placeholder per crew-day"
    return found[0]["duration"] if found else None


class TestWorkedExample:
    """5h job, then a 3h job, then the 5h job removed."""

    def test_single_short_job_leaves_remainder(self):
        items = capacity.reconcile_all([job("a", 5)])
        assert placeholder_hours(items) == 3

    def test_full_day_has_no_placeholder(self):
        items = capacity.reconcile_all([job("a", 5)])
        b = job("b", 3)
        items = capacity.reconcile_mutation(items + [b], b)
        assert placeholder_hours(items) is None

    def test_deleting_a_job_recomputes_from_remaining_work(self):
        items = capacity.reconcile_all([job("a", 5), job("b", 3)])
        removed = next(i for i in items if i["id"] == "a")
        items = capacity.reconcile_mutation([i for i in items if i["id"] != "a"], removed)
        assert placeholder_hours(items) == 5


class TestReconcile:
    def test_no_placeholder_without_real_jobs(self):
        note = {"id": "n", "type": "note", "date": date(2024, 6, 10), "crew_id": "crew-1", "note_content": "x"}
        items = capacity.reconcile_all([note])
        assert capacity.placeholders(items) == []

    def test_stale_placeholder_removed_when_last_job_goes(self):
        items = capacity.reconcile_all([job("a", 4)])
        removed = items[0]
        items = capacity.reconcile_mutation([i for i in items if i["id"] != "a"], removed)
        assert items == []

    def test_overbooked_day_has_no_placeholder(self):
        items = capacity.reconcile_all([job("a", 6), job("b", 4)])
        assert placeholder_hours(items) is None

    def test_move_reconciles_both_keys(self):
        items = capacity.reconcile_all([job("a", 5), job("b", 2)])
        assert placeholder_hours(items) == 1

        previous = next(i for i in items if i["id"] == "b")
        moved = dict(previous, crew_id="crew-2", date=date(2024, 6, 11))
        items = [moved if i["id"] == "b" else i for i in items]
        items = capacity.reconcile_mutation(items, moved, previous)

        assert placeholder_hours(items) == 3
        assert placeholder_hours(items, crew="crew-2", day=date(2024, 6, 11)) == 6

    def test_placeholder_shape(self):
        items = capacity.reconcile_all([job("a", 6)])
        p = capacity.placeholders(items)[0]
        assert p["id"] == "free_crew-1_2024-06-10"
        assert p["customer"] == "FREE_SLOT"
        assert p["address"] == "Available for booking"
        assert p["color"] == "free"
        assert p["depot_id"] == "depot-1"
        assert capacity.is_placeholder(p)
        assert not capacity.is_real_job(p)

    def test_placeholders_do_not_count_as_work(self):
        items = capacity.reconcile_all([job("a", 6)])
        items = capacity.reconcile_all(items)
        assert placeholder_hours(items) == 2
        assert len(capacity.placeholders(items)) == 1

    def test_string_dates_share_a_key_with_date_objects(self):
        items = capacity.reconcile_all([job("a", 3), job("b", 2, day="2024-06-10")])
        assert placeholder_hours(items) == 3

    def test_invariant_over_many_crew_days(self):
        items = []
        for n, hours in enumerate([1, 2, 3, 8, 0.5, 7.5]):
            items.append(job(f"j{n}", hours, crew=f"crew-{n % 3}", day=date(2024, 6, 10 + n % 2)))
        items = capacity.reconcile_all(items)

        keys = {capacity.crew_day(i) for i in items if capacity.is_real_job(i)}
        for key in keys:
            used, count = capacity.used_duration(items, key)
            assert count > 0
            free = placeholder_hours(items, crew=key[0], day=key[1])
            if used < 8:
                assert used + free == 8
            else:
                assert free is None


class TestBadDurations:
    def test_missing_duration_counts_as_zero(self):
        items = capacity.reconcile_all([job("a", None)])
        assert placeholder_hours(items) == 8

    def test_nan_and_text_count_as_zero(self):
        items = capacity.reconcile_all([job("a", float("nan")), job("b", "abc"), job("c", 2)])
        assert placeholder_hours(items) == 6

    def test_item_without_key_is_ignored(self):
        broken = {"id": "x", "type": "job", "duration": 4}
        items = capacity.reconcile_all([broken])
        assert items == [broken]
