from __future__ import annotations
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class Ledger:
    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, rec: Dict[str, Any]) -> None:
        rec = {"ts": datetime.now(timezone.utc).isoformat(), **rec}
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False, default=str) + "\n")


def record(ledger: Optional[Ledger], kind: str, **fields: Any) -> None:
    if ledger is not None:
        ledger.append({"kind": kind, **fields})
