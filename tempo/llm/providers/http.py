from __future__ import annotations
import json, urllib.request
from typing import Any, Dict, Optional


def post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float) -> Dict[str, Any]:
    req = urllib.request.Request(url, data=json.dumps(payload).encode("utf-8"),
                                 headers={"Content-Type": "application/json", **headers}, method="POST")
    with urllib.request.urlopen(req, timeout=timeout) as r:
        return json.loads(r.read().decode("utf-8"))


def maybe_json(text: str, json_mode: bool) -> Optional[Dict[str, Any]]:
    if not json_mode:
        return None
    s = text.strip()
    if s.startswith("```"):
        s = s.strip("`")
        if s.lower().startswith("json"):
            s = s[4:]
    try:
        js = json.loads(s)
    except Exception:
        return None
    return js if isinstance(js, dict) else None
