from __future__ import annotations


class SchedulingError(Exception):
    code = "scheduling_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.details = details


class InterpreterTimeout(SchedulingError):
    code = "interpreter_timeout"


class InterpreterMalformed(SchedulingError):
    code = "interpreter_malformed"


class ProposalInvalid(SchedulingError):
    code = "proposal_invalid"


class PolicyViolation(SchedulingError):
    code = "policy_violation"


class SessionBusy(SchedulingError):
    code = "session_busy"


class InterpreterUnavailable(InterpreterTimeout):
    code = "interpreter_unavailable"


class NotFound(SchedulingError):
    code = "not_found"
