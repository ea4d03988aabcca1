from __future__ import annotations
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tempo.core.jsonio import atomic_write_json, read_json_list
from tempo.core.timeutil import parse_date, parse_iso, to_iso
from tempo.core.types import Commitment
from tempo.stores.base import EventBackend

logger = logging.getLogger(__name__)

TASKS_FILE = "tasks_v1.json"
EVENTS_FILE = "events_v1.json"


def create_id() -> str:
    return str(uuid.uuid4())


def _stamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_tasks(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # incomplete first, dated before undated, earliest due, then newest created
    items = sorted(items, key=lambda t: t.get("createdAt") or "", reverse=True)
    return sorted(items, key=lambda t: (bool(t.get("completed")), not t.get("dueDate"), t.get("dueDate") or ""))


def _sort_events(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda e: e.get("startAt") or "")


class JsonCollection:
    def __init__(self, path: Path, sorter: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]]):
        self.path = Path(path)
        self.sorter = sorter

    def load(self) -> List[Dict[str, Any]]:
        return self.sorter(read_json_list(self.path))

    def save(self, items: List[Dict[str, Any]]) -> None:
        atomic_write_json(self.path, self.sorter(items))

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        for it in self.load():
            if it.get("id") == item_id:
                return it
        return None

    def add(self, rec: Dict[str, Any]) -> Dict[str, Any]:
        items = self.load()
        now = _stamp()
        rec = {**rec, "id": rec.get("id") or create_id(), "createdAt": rec.get("createdAt") or now, "updatedAt": now}
        items.append(rec)
        self.save(items)
        return rec

    def update(self, item_id: str, patch: Dict[str, Any]) -> bool:
        items = self.load()
        hit = False
        for it in items:
            if it.get("id") == item_id:
                it.update(patch)
                it["updatedAt"] = _stamp()
                hit = True
        if hit:
            self.save(items)
        return hit

    def delete(self, item_id: str) -> Optional[Dict[str, Any]]:
        items = self.load()
        removed = None
        kept = []
        for it in items:
            if removed is None and it.get("id") == item_id:
                removed = it
                continue
            kept.append(it)
        if removed is not None:
            self.save(kept)
        return removed


class TaskStore(JsonCollection):
    def __init__(self, path: Path):
        super().__init__(path, _sort_tasks)


class EventStore(JsonCollection):
    def __init__(self, path: Path):
        super().__init__(path, _sort_events)

    def list_window(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        out = []
        for e in self.load():
            s = parse_iso(e.get("startAt"))
            f = parse_iso(e.get("endAt"))
            if s is None or f is None:
                continue
            if s < end and f > start:
                out.append(e)
        return out


def event_to_commitment(e: Dict[str, Any]) -> Commitment:
    return Commitment(
        id=str(e.get("id")),
        title=str(e.get("title") or ""),
        start_at=parse_iso(e.get("startAt")),
        end_at=parse_iso(e.get("endAt")),
        is_anchor=bool(e.get("isAnchor") or False),
        kind="event",
        buffer_minutes=e.get("bufferMinutes") if isinstance(e.get("bufferMinutes"), int) else None,
    )


def task_to_commitment(t: Dict[str, Any]) -> Commitment:
    return Commitment(
        id=str(t.get("id")),
        title=str(t.get("title") or ""),
        due_date=parse_date(t.get("dueDate")),
        is_anchor=bool(t.get("isAnchor") or False),
        kind="task",
    )


class LocalCommitmentStore:
    """Device-local task store plus a pluggable event backend (JSON file by default)."""

    def __init__(self, data_dir: str, events: Optional[EventBackend] = None):
        base = Path(data_dir)
        self.tasks = TaskStore(base / TASKS_FILE)
        self.events: EventBackend = events if events is not None else EventStore(base / EVENTS_FILE)

    def commitments_window(self, now: datetime, days: int) -> List[Commitment]:
        end = now + timedelta(days=days)
        out = [event_to_commitment(e) for e in self.events.list_window(now, end)]
        first, last = now.date(), end.date()
        for t in self.tasks.load():
            if t.get("completed"):
                continue
            due = parse_date(t.get("dueDate"))
            if due is not None and first <= due <= last:
                out.append(task_to_commitment(t))
        return out

    def create_task(self, *, title: str, notes: Optional[str] = None, due_date: Optional[date] = None, is_anchor: bool = False) -> str:
        rec = self.tasks.add({
            "id": create_id(),
            "title": title,
            "notes": notes,
            "dueDate": due_date.isoformat() if due_date else None,
            "completed": False,
            "isAnchor": is_anchor,
            "scheduledEventId": None,
        })
        return rec["id"]

    def create_event(self, *, title: str, start_at: datetime, end_at: datetime, location: Optional[str] = None,
                     notes: Optional[str] = None, is_anchor: bool = False) -> str:
        rec = self.events.add({
            "id": create_id(),
            "title": title,
            "startAt": to_iso(start_at),
            "endAt": to_iso(end_at),
            "location": location,
            "notes": notes,
            "isAnchor": is_anchor,
        })
        return rec["id"]

    def list_tasks(self, include_completed: bool = False) -> List[Dict[str, Any]]:
        return [t for t in self.tasks.load() if include_completed or not t.get("completed")]

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        return self.tasks.get(task_id)

    def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        return self.events.get(event_id)

    def delete_task(self, task_id: str) -> bool:
        return self.tasks.delete(task_id) is not None

    def delete_event(self, event_id: str) -> bool:
        return self.events.delete(event_id) is not None

    def restore_task(self, snapshot: Dict[str, Any]) -> None:
        if self.tasks.get(str(snapshot.get("id"))) is not None:
            logger.info("task %s already present, skipping restore", snapshot.get("id"))
            return
        self.tasks.add(dict(snapshot))

    def update_title(self, kind: str, item_id: str, title: str) -> bool:
        coll = self.tasks if kind == "task" else self.events
        return coll.update(item_id, {"title": title})
