from __future__ import annotations
import argparse
import logging
import os
from dataclasses import replace
from typing import Optional

from tempo.commit.coordinator import CommitCoordinator
from tempo.config import Config, load_config
from tempo.core.errors import NotFound, PolicyViolation, ProposalInvalid, SessionBusy
from tempo.core.ledger import Ledger
from tempo.llm.interpreter import Interpreter
from tempo.llm.local_rules import LocalRulesInterpreter
from tempo.llm.router import build_llm
from tempo.pipeline.proposals import ProposalPipeline
from tempo.session.machine import SchedulerSession
from tempo.session.store import SessionStore
from tempo.stores.json_store import LocalCommitmentStore
from tempo.stores.preferences import PreferencesStore

logger = logging.getLogger(__name__)


def build_store(cfg: Config) -> LocalCommitmentStore:
    events = None
    if cfg.calendar_backend == "google":
        from tempo.adapters.gcal_google import GoogleCalendarEvents
        events = GoogleCalendarEvents.connect(
            client_secret_path=cfg.google_client_secret,
            token_path=cfg.google_token_path,
            calendar_id=cfg.google_calendar_id,
        )
    return LocalCommitmentStore(cfg.data_dir, events=events)


def build_session(cfg: Config, provider: Optional[str] = None) -> SchedulerSession:
    os.makedirs(cfg.data_dir, exist_ok=True)
    ledger = Ledger(os.path.join(cfg.data_dir, "ledger.jsonl"))
    store = build_store(cfg)
    llm = build_llm(cfg, provider=provider)
    if llm is None:
        logger.info("no LLM provider configured, using local rules")
        interpreter = LocalRulesInterpreter()
        refiner = None
    else:
        interpreter = Interpreter(llm, cfg)
        refiner = interpreter.refine_title if cfg.title_cleanup else None
    coordinator = CommitCoordinator(store, cfg, ledger=ledger)
    pipeline = ProposalPipeline(cfg, coordinator, ledger=ledger, title_refiner=refiner)
    prefs_store = PreferencesStore(cfg.data_dir)
    session = SchedulerSession(cfg, interpreter, pipeline, store, session_store=SessionStore(cfg.data_dir), ledger=ledger,
                               preferences=prefs_store.load(), preferences_store=prefs_store)
    session.restore()
    return session


def _describe(i: int, p) -> str:
    when = f"{p.start_at:%a %d %b %H:%M}-{p.end_at:%H:%M}" if p.is_timed else (f"due {p.due_date}" if p.due_date else "unscheduled")
    anchor = " [anchor]" if p.is_anchor else ""
    return f"  {i}. {p.type}: {p.title} ({when}){anchor}"


def _show(session: SchedulerSession) -> None:
    proposals = session.state.last_proposals or []
    by_id = {c.proposal_id: c.conflicting_commitment_id for c in session.conflicts}
    for i, p in enumerate(proposals, 1):
        print(_describe(i, p))
        if p.id in by_id:
            print(f"     conflicts with {by_id[p.id]}")
    if proposals:
        print("  :confirm N  :reschedule N  :tasks  :schedule N  :undo  :reset  :quit")


def _pick(session: SchedulerSession, arg: str):
    proposals = session.state.last_proposals or []
    try:
        return proposals[int(arg) - 1]
    except (ValueError, IndexError):
        print(f"no proposal {arg!r}")
        return None


def _pick_task(session: SchedulerSession, arg: str):
    tasks = session.store.list_tasks()
    try:
        return tasks[int(arg) - 1]
    except (ValueError, IndexError):
        print(f"no task {arg!r}")
        return None


def main():
    ap = argparse.ArgumentParser(description="Chat with the scheduler.")
    ap.add_argument("--data-dir", default=None)
    ap.add_argument("--provider", default=None, help="ollama | openai | anthropic | local")
    ap.add_argument("--timezone", default=None)
    ap.add_argument("--log-level", default=os.getenv("TEMPO_LOG_LEVEL", "WARNING"))
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    cfg = load_config()
    if args.data_dir:
        cfg = replace(cfg, data_dir=args.data_dir)
    if args.timezone:
        cfg = replace(cfg, timezone=args.timezone)
    session = build_session(cfg, provider=args.provider)

    for m in session.messages[-6:]:
        print(f"{m.role}> {m.text}")
    while True:
        try:
            line = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not line:
            continue
        cmd, _, arg = line.partition(" ")
        try:
            if cmd == ":quit":
                break
            elif cmd == ":reset":
                session.reset()
                print("(new conversation)")
            elif cmd == ":undo":
                print("undone" if session.undo() else "nothing to undo")
            elif cmd == ":confirm":
                p = _pick(session, arg)
                if p is not None:
                    session.confirm(p.id)
                    print(f"saved {p.title}")
                    _show(session)
            elif cmd == ":tasks":
                for i, t in enumerate(session.store.list_tasks(), 1):
                    due = f" (due {t['dueDate']})" if t.get("dueDate") else ""
                    print(f"  {i}. {t.get('title')}{due}")
            elif cmd == ":schedule":
                t = _pick_task(session, arg)
                if t is not None:
                    result = session.schedule_task(t["id"])
                    print(f"tempo> {result.reply}")
                    _show(session)
            elif cmd == ":reschedule":
                p = _pick(session, arg)
                if p is not None:
                    if session.reschedule(p.id) is None:
                        print("no free slot in the next 7 days; enter a time manually")
                    _show(session)
            else:
                result = session.send(line)
                print(f"tempo> {result.reply}")
                _show(session)
        except (NotFound, ProposalInvalid, PolicyViolation, SessionBusy) as e:
            print(f"error: {e}")
    session.flush()


if __name__ == "__main__":
    main()
