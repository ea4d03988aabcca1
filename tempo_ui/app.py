from __future__ import annotations
import threading
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from tempo.config import load_config
from tempo.core.errors import NotFound, PolicyViolation, ProposalInvalid, SchedulingError, SessionBusy
from tempo.main import build_session
from tempo.session.machine import SchedulerSession, TurnResult
from tempo.stores.preferences import Preferences

app = FastAPI(title="tempo")

_session: Optional[SchedulerSession] = None
_session_lock = threading.Lock()


def get_session() -> SchedulerSession:
    global _session
    with _session_lock:
        if _session is None:
            _session = build_session(load_config())
        return _session


class SendBody(BaseModel):
    message: str = Field(..., max_length=4000)


class ReplaceBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    commitment_id: str = Field(..., alias="commitmentId")


class DurationBody(BaseModel):
    minutes: int


def _error(status: int, e: SchedulingError) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": e.code, "detail": str(e), **e.details})


@app.exception_handler(SessionBusy)
async def _busy(request: Request, e: SessionBusy):
    return _error(409, e)


@app.exception_handler(ProposalInvalid)
async def _invalid(request: Request, e: ProposalInvalid):
    return _error(422, e)


@app.exception_handler(PolicyViolation)
async def _policy(request: Request, e: PolicyViolation):
    return _error(403, e)


@app.exception_handler(NotFound)
async def _missing(request: Request, e: NotFound):
    return _error(404, e)


def _turn(result: TurnResult) -> Dict[str, Any]:
    return {
        "reply": result.reply,
        "mode": result.mode,
        "status": result.status,
        "autoCommitted": [p.to_dict() for p in result.auto_committed],
        "pending": [p.to_dict() for p in result.pending],
        "conflicts": [{"proposalId": c.proposal_id, "commitmentId": c.conflicting_commitment_id} for c in result.conflicts],
        "failures": result.failures,
        "error": result.error,
    }


@app.get("/session")
def session_view(session: SchedulerSession = Depends(get_session)):
    return session.snapshot()


@app.post("/chat/send")
def chat_send(body: SendBody, session: SchedulerSession = Depends(get_session)):
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="empty message")
    return _turn(session.send(body.message))


@app.post("/chat/reset")
def chat_reset(session: SchedulerSession = Depends(get_session)):
    session.reset()
    return session.snapshot()


@app.post("/proposals/{proposal_id}/confirm")
def proposal_confirm(proposal_id: str, session: SchedulerSession = Depends(get_session)):
    committed_id = session.confirm(proposal_id)
    return {"ok": True, "committedId": committed_id, "undo": session.snapshot()["undo"]}


@app.post("/proposals/{proposal_id}/reschedule")
def proposal_reschedule(proposal_id: str, session: SchedulerSession = Depends(get_session)):
    moved = session.reschedule(proposal_id)
    if moved is None:
        return JSONResponse(status_code=404, content={"error": "no_slot_found"})
    return {"proposal": moved.to_dict()}


@app.post("/proposals/{proposal_id}/replace")
def proposal_replace(proposal_id: str, body: ReplaceBody, session: SchedulerSession = Depends(get_session)):
    remaining = session.replace(proposal_id, body.commitment_id)
    return {"ok": True, "conflicts": [{"proposalId": c.proposal_id, "commitmentId": c.conflicting_commitment_id} for c in remaining]}


@app.post("/proposals/{proposal_id}/duration")
def proposal_duration(proposal_id: str, body: DurationBody, session: SchedulerSession = Depends(get_session)):
    updated = session.change_duration(proposal_id, body.minutes)
    conflicts = [c.conflicting_commitment_id for c in session.conflicts if c.proposal_id == proposal_id]
    return {"proposal": updated.to_dict(), "conflicts": conflicts}


@app.get("/tasks")
def tasks_list(session: SchedulerSession = Depends(get_session)):
    return {"tasks": session.store.list_tasks()}


@app.post("/tasks/{task_id}/schedule")
def task_schedule(task_id: str, session: SchedulerSession = Depends(get_session)):
    return _turn(session.schedule_task(task_id))


@app.get("/preferences")
def preferences_view(session: SchedulerSession = Depends(get_session)):
    return session.preferences.to_json() if session.preferences is not None else {}


@app.put("/preferences")
def preferences_update(body: Preferences, session: SchedulerSession = Depends(get_session)):
    session.set_preferences(body)
    return body.to_json()


@app.post("/undo")
def undo(session: SchedulerSession = Depends(get_session)):
    return {"ok": session.undo()}


@app.get("/ui/settings")
def ui_settings():
    cfg = load_config()
    return {"holdToConfirmMs": cfg.hold_to_confirm_ms, "undoTtlS": cfg.undo_ttl_s, "timezone": cfg.timezone}
