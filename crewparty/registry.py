from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from crewparty.config import GameConfig
from crewparty.errors import InvalidAction, NotFound, SessionLocked
from crewparty.roster import Player, generate_numbers
from crewparty.session import Session

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 100


@dataclass(frozen=True)
class Binding:
    room_code: str
    is_host: bool


def normalize_code(code: object) -> str:
    if not isinstance(code, str):
        raise InvalidAction("Room code must be a string")
    return code.strip().upper()


class SessionRegistry:
    """Owns every live session and which participant is attached to which one."""

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        rng: Optional[random.Random] = None,
        code_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.config = config or GameConfig()
        self.rng = rng or random.Random()
        self._code_factory = code_factory or self._random_code
        self.sessions: Dict[str, Session] = {}
        self._bindings: Dict[str, Binding] = {}

    def _random_code(self) -> str:
        return "".join(self.rng.choice(CODE_ALPHABET) for _ in range(self.config.code_length))

    def _new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._code_factory().upper()
            if code not in self.sessions:
                return code
        raise RuntimeError("Could not generate a free room code")

    def create_session(self, imposter_count: int) -> Session:
        try:
            requested = int(imposter_count)
        except (TypeError, ValueError, OverflowError):
            raise InvalidAction("Imposter count must be a number") from None
        count = max(1, min(self.config.max_imposters, requested))
        session = Session(code=self._new_code(), imposter_count=count)
        self.sessions[session.code] = session
        logger.info("[%s] Session created (%d imposters)", session.code, count)
        return session

    def lookup(self, room_code: object) -> Session:
        session = self.sessions.get(normalize_code(room_code))
        if session is None:
            raise NotFound("Game not found")
        return session

    def check_room(self, room_code: object) -> Tuple[bool, Optional[str]]:
        try:
            session = self.lookup(room_code)
        except NotFound as e:
            return False, e.message
        if session.started:
            return False, "Game already started"
        return True, None

    def binding(self, participant_id: str) -> Optional[Binding]:
        return self._bindings.get(participant_id)

    def release(self, participant_id: str) -> Optional[Binding]:
        """Detach a participant from whatever session it was attached to."""
        prev = self._bindings.pop(participant_id, None)
        session = self.sessions.get(prev.room_code) if prev else None
        if session is not None:
            if prev.is_host and session.host_id == participant_id:
                session.host_id = None
            elif not prev.is_host:
                session.roster.unbind(participant_id)
        return prev

    def bind_host(self, room_code: object, participant_id: str) -> Session:
        session = self.lookup(room_code)
        self.release(participant_id)
        if session.host_id is not None and session.host_id != participant_id:
            self._bindings.pop(session.host_id, None)
        session.host_id = participant_id
        self._bindings[participant_id] = Binding(session.code, is_host=True)
        return session

    def clean_name(self, name: object) -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidAction("A display name is required")
        return name.strip()[: self.config.name_max_len]

    def join_or_rejoin(self, room_code: object, participant_id: str, name: object) -> Tuple[Player, bool]:
        """Attach ``participant_id`` to the player called ``name``.

        An existing record is rebound in place, keeping numbers, role, status
        and progress. Unknown names are only accepted before the game starts.
        Returns ``(player, rejoined)``.
        """
        session = self.lookup(room_code)
        name = self.clean_name(name)
        prev = self.binding(participant_id)
        if prev is not None and prev.is_host:
            raise InvalidAction("The host cannot join as a player")
        roster = session.roster

        player = roster.by_name(name)
        if player is None and session.started:
            raise SessionLocked("Game already started")
        self.release(participant_id)
        if player is not None:
            old = roster.rebind(player, participant_id)
            if old is not None and old != participant_id:
                self._bindings.pop(old, None)
            rejoined = True
        else:
            numbers = generate_numbers(self.rng, self.config.numbers_per_player, self.config.number_max)
            player = roster.add(participant_id, name, numbers)
            rejoined = False

        self._bindings[participant_id] = Binding(session.code, is_host=False)
        logger.info("[%s] %s %s", session.code, name, "rejoined" if rejoined else "joined")
        return player, rejoined
