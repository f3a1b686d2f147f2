"""Session Context Management.

Context variables binding the sync session ID and its leaderboard scope
(mode, timeframe, language) to every log entry emitted while a session
is processing channel events or polling.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any, Optional


_session_id_var: ContextVar[str] = ContextVar("session_id", default="")
_scope_var: ContextVar[Optional[dict]] = ContextVar("scope", default=None)


def generate_session_id() -> str:
    """Generate a short unique session ID."""
    return f"lbs_{uuid.uuid4().hex[:12]}"


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx: dict[str, Any] = {}
    session_id = _session_id_var.get()
    if session_id:
        ctx["session_id"] = session_id
    scope = _scope_var.get()
    if scope:
        ctx.update(scope)
    return ctx


@dataclass
class SessionContext:
    """Context manager binding a session's identity to log entries.

    Nested use is safe: leaving the block restores whatever context was
    active when it was entered.

    Example:
        with SessionContext(session_id="lbs_abc", scope={"mode": "global"}):
            logger.info("polling")  # includes session_id and mode
    """

    session_id: str = ""
    scope: dict[str, Any] = field(default_factory=dict)

    _tokens: list[Token] = field(default_factory=list, repr=False)

    def __enter__(self) -> "SessionContext":
        self._tokens.append(_session_id_var.set(self.session_id))
        self._tokens.append(_scope_var.set(dict(self.scope)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        scope_token = self._tokens.pop()
        session_token = self._tokens.pop()
        _scope_var.reset(scope_token)
        _session_id_var.reset(session_token)
