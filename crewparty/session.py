from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from crewparty.roster import Roster

if TYPE_CHECKING:
    from crewparty.media import Photo
    from crewparty.meeting import Meeting

# Notice targets besides a player id.
HOST = "@host"
ROOM = "@room"


@dataclass
class Notice:
    to: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def message(self) -> Dict[str, Any]:
        return {"type": self.type, **self.data}


@dataclass
class Winner:
    team: str
    reason: str


@dataclass(eq=False)
class Session:
    code: str
    imposter_count: int
    host_id: Optional[str] = None
    started: bool = False
    roster: Roster = field(default_factory=Roster)
    meeting: Optional[Meeting] = None
    votes: Dict[str, Optional[str]] = field(default_factory=dict)
    photos: List[Photo] = field(default_factory=list)
    winner: Optional[Winner] = None
    meeting_seq: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def over(self) -> bool:
        return self.winner is not None
