from datetime import datetime, timezone

from tempo.auto_commit.policy import can_auto_commit, route
from tempo.config import Config
from tempo.core.types import Commitment, Proposal


def _cfg(**overrides) -> Config:
    base = dict(
        auto_commit=True,
        auto_commit_max_minutes=60,
        default_task_minutes=30,
        default_event_minutes=60,
        buffer_minutes=0,
    )
    base.update(overrides)
    return Config(**base)


def _task(**kw) -> Proposal:
    base = dict(id="p1", type="task", title="Buy milk", duration_minutes=20)
    base.update(kw)
    return Proposal(**base)


def test_short_task_auto_commits():
    assert can_auto_commit(_task(), False, _cfg())


def test_events_always_need_confirmation():
    assert not can_auto_commit(_task(type="event"), False, _cfg())


def test_anchor_needs_confirmation():
    assert not can_auto_commit(_task(is_anchor=True), False, _cfg())


def test_duration_limit():
    assert can_auto_commit(_task(duration_minutes=60), False, _cfg())
    assert not can_auto_commit(_task(duration_minutes=61), False, _cfg())


def test_untimed_task_uses_default_minutes():
    assert can_auto_commit(_task(duration_minutes=None), False, _cfg())
    assert not can_auto_commit(_task(duration_minutes=None), False, _cfg(default_task_minutes=90))


def test_conflict_blocks():
    assert not can_auto_commit(_task(), True, _cfg())


def test_disabled():
    assert not can_auto_commit(_task(), False, _cfg(auto_commit=False))


def test_decision_is_pure():
    cfg = _cfg()
    p = _task()
    first = [can_auto_commit(p, c, cfg) for c in (False, True)]
    for _ in range(5):
        assert [can_auto_commit(p, c, cfg) for c in (False, True)] == first


def test_route_checks_conflicts_for_timed_task():
    t0 = datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
    t1 = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)
    p = _task(start_at=t0, end_at=t1, duration_minutes=30)
    busy = Commitment(id="c1", title="Standup", start_at=t0, end_at=t1)
    assert route(p, [], _cfg())
    assert not route(p, [busy], _cfg())
