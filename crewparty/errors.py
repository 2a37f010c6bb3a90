from __future__ import annotations

from typing import Any, Dict


class GameError(Exception):
    """A rejected intent. Reported to the initiating participant only."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_message(self) -> Dict[str, Any]:
        return {"type": "error", "code": self.code, "message": self.message}


class NotFound(GameError):
    code = "not_found"


class SessionLocked(GameError):
    code = "session_locked"


class InvalidAction(GameError):
    code = "invalid_action"


class Unauthorized(GameError):
    code = "unauthorized"


class Cooldown(GameError):
    code = "cooldown"

    def __init__(self, remaining: int) -> None:
        super().__init__(f"Cooldown: {remaining}s remaining")
        self.remaining = remaining

    def to_message(self) -> Dict[str, Any]:
        msg = super().to_message()
        msg["remaining"] = self.remaining
        return msg
