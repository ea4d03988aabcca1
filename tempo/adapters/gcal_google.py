from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from tempo.core.timeutil import to_iso

logger = logging.getLogger(__name__)

GCAL_SCOPES = ["https://www.googleapis.com/auth/calendar"]
ANCHOR_KEY = "tempoAnchor"


def get_creds(*, scopes: List[str], client_secret_path: str, token_path: str) -> Credentials:
    client_secret = Path(client_secret_path)
    token_file = Path(token_path)
    creds = None
    if token_file.exists():
        creds = Credentials.from_authorized_user_file(str(token_file), scopes)
    if creds and creds.valid:
        return creds
    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    else:
        if not client_secret.exists():
            raise FileNotFoundError(f"Missing client secret file: {client_secret}")
        flow = InstalledAppFlow.from_client_secrets_file(str(client_secret), scopes)
        creds = flow.run_local_server(port=0)
    token_file.parent.mkdir(parents=True, exist_ok=True)
    token_file.write_text(creds.to_json(), encoding="utf-8")
    return creds


def _from_google(ev: Dict[str, Any]) -> Dict[str, Any]:
    start = (ev.get("start", {}) or {}).get("dateTime") or (ev.get("start", {}) or {}).get("date")
    end = (ev.get("end", {}) or {}).get("dateTime") or (ev.get("end", {}) or {}).get("date")
    private = ((ev.get("extendedProperties") or {}).get("private") or {})
    return {
        "id": ev.get("id", ""),
        "title": ev.get("summary", ""),
        "startAt": start,
        "endAt": end,
        "location": ev.get("location"),
        "notes": ev.get("description") or "",
        "isAnchor": private.get(ANCHOR_KEY) == "1",
    }


class GoogleCalendarEvents:
    """Event backend over the Google Calendar v3 API."""

    def __init__(self, svc: Any, calendar_id: str = "primary"):
        self.svc = svc
        self.calendar_id = calendar_id

    @classmethod
    def connect(cls, *, client_secret_path: str, token_path: str, calendar_id: str = "primary") -> "GoogleCalendarEvents":
        creds = get_creds(scopes=GCAL_SCOPES, client_secret_path=client_secret_path, token_path=token_path)
        return cls(build("calendar", "v3", credentials=creds), calendar_id)

    def list_window(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        resp = self.svc.events().list(
            calendarId=self.calendar_id, timeMin=to_iso(start), timeMax=to_iso(end),
            singleEvents=True, orderBy="startTime", maxResults=250,
        ).execute()
        return [_from_google(ev) for ev in resp.get("items", []) or []]

    def get(self, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            ev = self.svc.events().get(calendarId=self.calendar_id, eventId=item_id).execute()
        except HttpError as e:
            if getattr(e, "status_code", None) in (404, 410) or getattr(getattr(e, "resp", None), "status", None) in (404, 410):
                return None
            raise
        if ev.get("status") == "cancelled":
            return None
        return _from_google(ev)

    def add(self, rec: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "summary": rec.get("title", ""),
            "description": rec.get("notes") or "",
            "start": {"dateTime": rec.get("startAt")},
            "end": {"dateTime": rec.get("endAt")},
        }
        if rec.get("location"):
            body["location"] = rec["location"]
        if rec.get("isAnchor"):
            body["extendedProperties"] = {"private": {ANCHOR_KEY: "1"}}
        if rec.get("id"):
            # google ids are base32hex; ours are uuid4 hex without dashes
            body["id"] = str(rec["id"]).replace("-", "")
        created = self.svc.events().insert(calendarId=self.calendar_id, body=body).execute()
        logger.info("created google event %s", created.get("id"))
        return _from_google(created)

    def update(self, item_id: str, patch: Dict[str, Any]) -> bool:
        body: Dict[str, Any] = {}
        if "title" in patch:
            body["summary"] = patch["title"]
        if "notes" in patch:
            body["description"] = patch["notes"] or ""
        if not body:
            return False
        self.svc.events().patch(calendarId=self.calendar_id, eventId=item_id, body=body).execute()
        return True

    def delete(self, item_id: str) -> Optional[Dict[str, Any]]:
        existing = self.get(item_id)
        if existing is None:
            return None
        self.svc.events().delete(calendarId=self.calendar_id, eventId=item_id).execute()
        return existing
