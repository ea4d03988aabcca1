from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol

from tempo.core.types import Commitment


class EventBackend(Protocol):
    def list_window(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        ...

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        ...

    def add(self, rec: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def update(self, item_id: str, patch: Dict[str, Any]) -> bool:
        ...

    def delete(self, item_id: str) -> Optional[Dict[str, Any]]:
        ...


class CommitmentStore(Protocol):
    def commitments_window(self, now: datetime, days: int) -> List[Commitment]:
        ...

    def create_task(self, *, title: str, notes: Optional[str] = None, due_date: Optional[date] = None, is_anchor: bool = False) -> str:
        ...

    def create_event(self, *, title: str, start_at: datetime, end_at: datetime, location: Optional[str] = None,
                     notes: Optional[str] = None, is_anchor: bool = False) -> str:
        ...

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        ...

    def delete_task(self, task_id: str) -> bool:
        ...

    def delete_event(self, event_id: str) -> bool:
        ...

    def restore_task(self, snapshot: Dict[str, Any]) -> None:
        ...

    def update_title(self, kind: str, item_id: str, title: str) -> bool:
        ...
