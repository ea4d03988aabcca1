from datetime import datetime, timedelta, timezone

from tempo.planning.slots import Interval, find_candidate_slots, first_clear_slot, slot_label

UTC = timezone.utc


def _at(day: int, hh: int, mm: int = 0) -> datetime:
    # March 2026: the 2nd is a Monday
    return datetime(2026, 3, day, hh, mm, tzinfo=UTC)


def test_candidates_skip_busy_hour():
    busy = [Interval(_at(2, 10), _at(2, 11))]
    slots = find_candidate_slots(busy, _at(2, 8), 30, days_ahead=0, day_start_hour=9, day_end_hour=12,
                                 step_minutes=30, max_results=10)
    starts = [s.start_at for s in slots]
    assert starts[0] == _at(2, 9)
    assert starts[1] == _at(2, 9, 30)
    assert _at(2, 10) not in starts
    assert _at(2, 10, 30) not in starts
    assert starts[2] == _at(2, 11)
    assert slots[0].end_at == _at(2, 9, 30)


def test_candidates_last_slot_may_end_at_day_end():
    slots = find_candidate_slots([], _at(2, 8), 30, days_ahead=0, day_start_hour=9, day_end_hour=12,
                                 step_minutes=30, max_results=10)
    assert len(slots) == 6
    assert slots[-1].end_at == _at(2, 12)


def test_day_zero_clamps_to_step_after_now():
    now = _at(2, 9, 10)
    slots = find_candidate_slots([], now, 30, days_ahead=1, day_start_hour=9, day_end_hour=12,
                                 step_minutes=30, max_results=20)
    assert slots[0].start_at == _at(2, 9, 30)
    assert all(s.start_at >= now for s in slots)
    # day 1 starts at the configured hour again
    assert _at(3, 9) in [s.start_at for s in slots]


def test_candidates_never_overlap_busy():
    busy = [Interval(_at(2, 9, 15), _at(2, 9, 45)), Interval(_at(2, 13), _at(2, 15)), Interval(_at(3, 9), _at(3, 20))]
    slots = find_candidate_slots(busy, _at(2, 7), 45, days_ahead=2, day_start_hour=9, day_end_hour=20,
                                 step_minutes=15, max_results=100)
    assert slots
    for s in slots:
        iv = Interval(s.start_at, s.end_at)
        assert not any(iv.overlaps(b) for b in busy)
    assert all(s.start_at.date() != _at(3, 0).date() for s in slots)


def test_max_results_stops_search():
    slots = find_candidate_slots([], _at(2, 8), 30, days_ahead=7, max_results=3)
    assert len(slots) == 3


def test_no_slot_is_empty_list():
    busy = [Interval(_at(2, 0), _at(4, 0))]
    assert find_candidate_slots(busy, _at(2, 8), 30, days_ahead=1) == []


def test_slot_labels():
    now = _at(2, 8)
    assert slot_label(_at(2, 9), now) == "Today Morning"
    assert slot_label(_at(3, 13), now) == "Tomorrow Afternoon"
    assert slot_label(_at(4, 18), now) == "Wed Evening"
    assert slot_label(_at(2, 12), now) == "Today Afternoon"
    assert slot_label(_at(2, 17), now) == "Today Evening"


def test_first_clear_slot_walks_past_busy():
    busy = [Interval(_at(2, 14, 15), _at(2, 15))]
    slot = first_clear_slot(_at(2, 14), 30, busy, step_minutes=15)
    assert slot == Interval(_at(2, 15), _at(2, 15, 30))


def test_first_clear_slot_respects_buffer():
    busy = [Interval(_at(2, 14, 15), _at(2, 15))]
    slot = first_clear_slot(_at(2, 14), 30, busy, buffer_minutes=10, step_minutes=15)
    assert slot.start == _at(2, 15, 15)


def test_first_clear_slot_gives_up_after_bound():
    busy = [Interval(_at(2, 0), _at(2, 0) + timedelta(days=30))]
    assert first_clear_slot(_at(2, 9), 30, busy, step_minutes=15, max_steps=7 * 24 * 4) is None
