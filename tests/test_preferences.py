import json
from datetime import datetime, timezone

from tempo.commit.coordinator import CommitCoordinator
from tempo.config import Config
from tempo.llm.schemas import InterpreterResponse
from tempo.main import build_session
from tempo.pipeline.proposals import ProposalPipeline
from tempo.planning.energy import default_energy_profile
from tempo.session.machine import SchedulerSession
from tempo.stores.json_store import LocalCommitmentStore
from tempo.stores.preferences import PREFERENCES_FILE, Preferences, PreferencesStore

UTC = timezone.utc
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


def _cfg(**overrides) -> Config:
    base = dict(timezone="UTC", default_event_minutes=60, default_task_minutes=30, buffer_minutes=0,
                session_debounce_ms=60000)
    base.update(overrides)
    return Config(**base)


class ScriptedInterpreter:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def interpret(self, request):
        self.requests.append(request)
        return InterpreterResponse.model_validate(self.replies.pop(0))


def _session(tmp_path, interpreter, prefs=None):
    cfg = _cfg()
    store = LocalCommitmentStore(str(tmp_path))
    pipeline = ProposalPipeline(cfg, CommitCoordinator(store, cfg, clock=lambda: 0.0))
    return SchedulerSession(cfg, interpreter, pipeline, store, now_fn=lambda: NOW, preferences=prefs,
                            preferences_store=PreferencesStore(str(tmp_path)))


def test_store_round_trip_uses_camel_case(tmp_path):
    ps = PreferencesStore(str(tmp_path))
    assert ps.load() is None
    prefs = Preferences(default_task_minutes=20, buffer_between_events_minutes=10,
                        energy_peaks=[{"label": "morning", "start": "07:00", "end": "10:00"}])
    ps.save(prefs)
    raw = json.loads((tmp_path / PREFERENCES_FILE).read_text(encoding="utf-8"))
    assert raw["defaultTaskMinutes"] == 20
    assert raw["bufferBetweenEventsMinutes"] == 10
    assert "timezone" not in raw
    assert ps.load().to_json() == prefs.to_json()


def test_invalid_or_unreadable_file_is_ignored(tmp_path):
    path = tmp_path / PREFERENCES_FILE
    path.write_text(json.dumps({"defaultEventMinutes": 0}), encoding="utf-8")
    assert PreferencesStore(str(tmp_path)).load() is None
    path.write_text("{oops", encoding="utf-8")
    assert PreferencesStore(str(tmp_path)).load() is None


def test_apply_overrides_only_what_is_set():
    cfg = _cfg(default_event_minutes=45)
    out = Preferences.model_validate({"timezone": "Europe/Berlin", "bufferBetweenEventsMinutes": 15}).apply(cfg)
    assert out.timezone == "Europe/Berlin"
    assert out.buffer_minutes == 15
    assert out.default_event_minutes == 45
    assert Preferences().apply(cfg) is cfg


def test_energy_profile_from_peaks_and_lows():
    assert Preferences().energy_profile() == default_energy_profile()
    profile = Preferences.model_validate({"energyPeaks": [{"start": "06:30", "end": "09:00"}],
                                          "lowEnergyTimes": [{"start": "15:00", "end": "17:00"}]}).energy_profile()
    assert (profile.peak_start, profile.peak_end) == ("06:30", "09:00")
    assert (profile.slump_start, profile.slump_end) == ("15:00", "17:00")


def test_preferences_feed_request_and_reschedule(tmp_path):
    fake = ScriptedInterpreter({"mode": "intent", "intent": {"kind": "event", "title": "Write report",
                                                               "fixedStartAt": "2026-03-02T15:00:00Z"}})
    prefs = Preferences.model_validate({"defaultEventMinutes": 90, "bufferBetweenEventsMinutes": 10,
                                        "energyPeaks": [{"start": "10:00", "end": "12:00"}]})
    session = _session(tmp_path, fake, prefs)
    assert session.pipeline.cfg.buffer_minutes == 10
    assert session.coordinator.cfg.default_event_minutes == 90

    result = session.send("write the report at 3")
    sent = fake.requests[0].preferences
    assert sent["defaultEventMinutes"] == 90
    assert sent["bufferBetweenEventsMinutes"] == 10
    assert sent["energyPeaks"][0]["start"] == "10:00"
    (p,) = result.pending
    assert p.end_at == datetime(2026, 3, 2, 16, 30, tzinfo=UTC)

    moved = session.reschedule(p.id)
    assert moved.start_at == datetime(2026, 3, 2, 10, tzinfo=UTC)


def test_set_preferences_persists_and_reverts(tmp_path):
    session = _session(tmp_path, ScriptedInterpreter())
    session.set_preferences(Preferences(buffer_between_events_minutes=20))
    assert session.cfg.buffer_minutes == 20
    assert PreferencesStore(str(tmp_path)).load().buffer_between_events_minutes == 20
    session.set_preferences(Preferences())
    assert session.cfg.buffer_minutes == 0
    assert session.pipeline.cfg.buffer_minutes == 0


def test_build_session_loads_saved_preferences(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    PreferencesStore(str(tmp_path)).save(Preferences(default_task_minutes=25, timezone="America/New_York"))
    session = build_session(Config(data_dir=str(tmp_path), llm_provider=""))
    assert session.cfg.default_task_minutes == 25
    assert session.cfg.timezone == "America/New_York"
    assert session.pipeline.cfg is session.cfg
    assert session.snapshot()["preferences"]["defaultTaskMinutes"] == 25
