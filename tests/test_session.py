from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from tempo.commit.coordinator import CommitCoordinator
from tempo.config import Config
from tempo.core.errors import (
    InterpreterMalformed,
    InterpreterTimeout,
    NotFound,
    PolicyViolation,
    SessionBusy,
)
from tempo.core.types import AWAITING_CLARIFICATION, IDLE, SessionState
from tempo.llm.schemas import InterpreterResponse
from tempo.pipeline.proposals import ProposalPipeline
from tempo.session.machine import SchedulerSession, apply_followup
from tempo.session.store import SessionStore
from tempo.stores.json_store import LocalCommitmentStore

UTC = timezone.utc
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


def _cfg(**overrides) -> Config:
    base = dict(
        timezone="UTC",
        default_event_minutes=60,
        default_task_minutes=30,
        auto_commit=True,
        auto_commit_max_minutes=60,
        session_debounce_ms=60000,
        commitments_window_days=7,
        thread_turns=10,
    )
    base.update(overrides)
    return Config(**base)


class FakeInterpreter:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def interpret(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply()
        return InterpreterResponse.model_validate(reply)


def _session(tmp_path, interpreter, **overrides):
    cfg = _cfg(**overrides)
    store = LocalCommitmentStore(str(tmp_path))
    coordinator = CommitCoordinator(store, cfg, clock=lambda: 0.0)
    pipeline = ProposalPipeline(cfg, coordinator)
    session = SchedulerSession(cfg, interpreter, pipeline, store, session_store=SessionStore(str(tmp_path)),
                               now_fn=lambda: NOW)
    return session, store


def _followup(fields, intent=None, question="What time?"):
    return {"assistantText": question, "mode": "followup", "followUpQuestion": question,
            "awaitingFields": fields, "updatedIntent": intent}


def test_clarification_round_trip(tmp_path):
    fake = FakeInterpreter(
        _followup(["time"], {"kind": "event", "title": "Workout"}),
        _followup(["time"], {"durationMinutes": 45, "title": None}, question="Morning or evening?"),
        {"assistantText": "Booked in.", "mode": "intent",
         "intent": {"kind": "event", "title": "Workout", "fixedStartAt": "2026-03-03T07:00:00+00:00",
                    "durationMinutes": 45}},
    )
    session, _ = _session(tmp_path, fake)

    first = session.send("schedule a workout tomorrow")
    assert first.status == AWAITING_CLARIFICATION
    assert session.state.awaiting_fields == ["time"]
    assert session.state.last_question == "What time?"
    assert session.state.last_proposals is None

    session.send("45 minutes")
    assert session.state.pending_intent == {"kind": "event", "title": "Workout", "durationMinutes": 45}
    assert fake.requests[1].session_state["pendingIntent"] == {"kind": "event", "title": "Workout"}

    done = session.send("7am")
    assert done.status == IDLE
    assert session.state.awaiting_fields == []
    assert session.state.pending_intent is None
    assert len(session.state.last_proposals) == 1
    p = session.state.last_proposals[0]
    assert p.start_at == datetime(2026, 3, 3, 7, tzinfo=UTC)
    assert p.end_at == datetime(2026, 3, 3, 7, 45, tzinfo=UTC)


def test_followup_always_awaits_something():
    state = SessionState()
    apply_followup(state, InterpreterResponse.model_validate({"mode": "followup", "awaitingFields": []}))
    assert state.awaiting_fields == ["details"]


def test_thread_is_sent_with_request(tmp_path):
    fake = FakeInterpreter(_followup(["time"]), _followup(["time"]))
    session, _ = _session(tmp_path, fake, thread_turns=1)
    session.send("first")
    session.send("second")
    thread = fake.requests[1].conversation_thread
    assert thread == [{"role": "assistant", "text": "What time?"}]
    assert fake.requests[1].message == "second"


def test_auto_commit_and_undo_from_chat(tmp_path):
    fake = FakeInterpreter({"assistantText": "Added.", "mode": "intent",
                            "intent": {"kind": "task", "title": "Buy milk", "durationMinutes": 20}})
    session, store = _session(tmp_path, fake)
    result = session.send("buy milk")
    assert [p.title for p in result.auto_committed] == ["Buy milk"]
    assert session.state.last_proposals == []
    assert len(store.tasks.load()) == 1
    assert session.undo() is True
    assert store.tasks.load() == []


def test_timeout_leaves_state_alone(tmp_path):
    fake = FakeInterpreter(_followup(["time"], {"kind": "event", "title": "Gym"}), InterpreterTimeout("slow"))
    session, _ = _session(tmp_path, fake)
    session.send("gym")
    before = session.state.to_dict()
    result = session.send("at 6")
    assert result.error == "interpreter_timeout"
    assert session.state.to_dict() == before
    assert session.messages[-1].role == "assistant"
    assert session.messages[-2].text == "at 6"


def test_malformed_becomes_rephrase_followup(tmp_path):
    fake = FakeInterpreter(_followup(["time"], {"kind": "event", "title": "Gym"}), InterpreterMalformed("junk"))
    session, _ = _session(tmp_path, fake)
    session.send("gym")
    result = session.send("???")
    assert result.mode == "followup"
    assert session.state.awaiting_fields == ["message"]
    assert session.state.pending_intent == {"kind": "event", "title": "Gym"}
    assert "rephrase" in result.reply


def test_concurrent_send_is_rejected(tmp_path):
    seen = []
    holder = {}

    def reenter():
        try:
            holder["session"].send("again")
        except SessionBusy as e:
            seen.append(e)
        return _followup(["time"])

    session, _ = _session(tmp_path, FakeInterpreter(reenter))
    holder["session"] = session
    session.send("first")
    assert len(seen) == 1
    assert not session.busy


def test_blank_message_is_ignored(tmp_path):
    fake = FakeInterpreter()
    session, _ = _session(tmp_path, fake)
    result = session.send("   ")
    assert result.mode == "noop"
    assert fake.requests == []
    assert session.messages == []


def test_confirm_commits_pending_event(tmp_path):
    fake = FakeInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Dinner",
                                                          "fixedStartAt": "2026-03-02T19:00:00Z"}})
    session, store = _session(tmp_path, fake)
    session.send("dinner at 7pm")
    pid = session.state.last_proposals[0].id
    eid = session.confirm(pid)
    assert store.get_event(eid)["title"] == "Dinner"
    assert session.state.last_proposals == []
    with pytest.raises(NotFound):
        session.confirm(pid)


def test_replace_anchor_refused_then_reschedule(tmp_path):
    fake = FakeInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Dentist",
                                                          "fixedStartAt": "2026-03-02T14:00:00Z",
                                                          "durationMinutes": 30}})
    session, store = _session(tmp_path, fake)
    sid = store.create_event(title="Surgery", start_at=datetime(2026, 3, 2, 14, 15, tzinfo=UTC),
                             end_at=datetime(2026, 3, 2, 15, tzinfo=UTC), is_anchor=True)
    result = session.send("dentist at 2pm for 30 min")
    pid = result.pending[0].id
    assert [c.conflicting_commitment_id for c in result.conflicts] == [sid]

    with pytest.raises(PolicyViolation):
        session.replace(pid, sid)
    assert store.get_event(sid) is not None

    moved = session.reschedule(pid)
    assert moved.start_at == datetime(2026, 3, 2, 13, tzinfo=UTC)
    assert session.conflicts == []
    assert session.state.last_proposals[0].start_at == moved.start_at


def test_replace_unknown_commitment(tmp_path):
    fake = FakeInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Dinner",
                                                          "fixedStartAt": "2026-03-02T19:00:00Z"}})
    session, _ = _session(tmp_path, fake)
    session.send("dinner")
    with pytest.raises(NotFound):
        session.replace(session.state.last_proposals[0].id, "nope")


def test_change_duration_updates_conflicts(tmp_path):
    fake = FakeInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Review",
                                                          "fixedStartAt": "2026-03-02T10:00:00Z"}})
    session, store = _session(tmp_path, fake)
    store.create_event(title="Sync", start_at=datetime(2026, 3, 2, 11, 15, tzinfo=UTC),
                       end_at=datetime(2026, 3, 2, 12, tzinfo=UTC))
    session.send("review at 10")
    pid = session.state.last_proposals[0].id
    assert session.conflicts == []
    updated = session.change_duration(pid, 90)
    assert updated.end_at == datetime(2026, 3, 2, 11, 30, tzinfo=UTC)
    assert [c.proposal_id for c in session.conflicts] == [pid]


def test_state_persists_and_reset_clears(tmp_path):
    fake = FakeInterpreter(_followup(["time"], {"kind": "event", "title": "Gym"}))
    session, _ = _session(tmp_path, fake)
    session.send("gym")
    session.flush()

    loaded = SessionStore(str(tmp_path)).load()
    assert loaded is not None
    state, messages = loaded
    assert state.awaiting_fields == ["time"]
    assert [m.role for m in messages] == ["user", "assistant"]

    session.reset()
    assert session.state.status == IDLE
    assert session.messages == []
    assert SessionStore(str(tmp_path)).load() is None


def test_restore_discards_garbage(tmp_path):
    (tmp_path / "scheduler_session_v1.json").write_text("{not json", encoding="utf-8")
    session, _ = _session(tmp_path, FakeInterpreter())
    assert session.restore() is False
    assert session.state.status == IDLE


def test_offsetless_times_are_read_in_user_timezone(tmp_path):
    ny = ZoneInfo("America/New_York")
    fake = FakeInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Dentist",
                                                          "fixedStartAt": "2026-03-03T14:00:00",
                                                          "durationMinutes": 30}})
    session, store = _session(tmp_path, fake, timezone="America/New_York")
    sid = store.create_event(title="Lunch meeting", start_at=datetime(2026, 3, 3, 19, tzinfo=UTC),
                             end_at=datetime(2026, 3, 3, 20, tzinfo=UTC))
    result = session.send("dentist tomorrow at 2")
    (p,) = result.pending
    assert p.start_at.astimezone(ny).hour == 14
    assert p.start_at.utcoffset() == timedelta(hours=-5)
    assert [c.conflicting_commitment_id for c in result.conflicts] == [sid]


def test_schedule_task_offers_slots_and_converts_on_confirm(tmp_path):
    session, store = _session(tmp_path, FakeInterpreter())
    tid = store.create_task(title="Essay draft", notes="chapter 2")
    result = session.schedule_task(tid)
    assert result.mode == "proposal"
    assert result.auto_committed == []
    assert len(result.pending) == 3
    assert {p.source_task_id for p in result.pending} == {tid}
    first = result.pending[0]
    assert first.type == "event"
    assert first.start_at == datetime(2026, 3, 2, 9, tzinfo=UTC)
    assert first.end_at == datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
    assert session.messages[0].text.startswith('Schedule task: "Essay draft"')

    eid = session.confirm(first.id)
    event = store.get_event(eid)
    assert event["title"] == "Essay draft"
    assert event["notes"].startswith("(Scheduled Task)\nchapter 2")
    assert store.get_task(tid) is None
    assert session.state.last_proposals == []
    assert session.coordinator.undo_entry.action_kind == "task-to-event"

    assert session.undo() is True
    assert store.get_event(eid) is None
    assert store.get_task(tid)["title"] == "Essay draft"


def test_schedule_unknown_task(tmp_path):
    session, _ = _session(tmp_path, FakeInterpreter())
    with pytest.raises(NotFound):
        session.schedule_task("missing")
    assert not session.busy
