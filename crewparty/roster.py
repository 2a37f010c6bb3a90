from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Role(str, Enum):
    CREWMATE = "crewmate"
    IMPOSTER = "imposter"


class Status(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"
    VOTED_OUT = "voted-out"


@dataclass
class Player:
    id: str
    name: str
    numbers: List[int]
    role: Optional[Role] = None
    status: Status = Status.ALIVE
    tasks_completed: int = 0
    last_meeting_time: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self.status == Status.ALIVE

    def kill(self, status: Status = Status.DEAD) -> None:
        # alive -> dead / voted-out only, never back
        if not self.alive or status == Status.ALIVE:
            raise ValueError(f"{self.name} cannot become {status.value}")
        self.status = status

    def public(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name, "numbers": list(self.numbers)}


def generate_numbers(rng: random.Random, count: int = 6, highest: int = 15) -> List[int]:
    return rng.sample(range(1, highest + 1), count)


class Roster:
    """Players of one session, plus the participant -> player binding."""

    def __init__(self) -> None:
        self.players: Dict[str, Player] = {}
        self._bindings: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self.players)

    def __iter__(self):
        return iter(self.players.values())

    def add(self, participant_id: str, name: str, numbers: List[int]) -> Player:
        pid = uuid.uuid4().hex[:8]
        while pid in self.players:
            pid = uuid.uuid4().hex[:8]
        player = Player(id=pid, name=name, numbers=numbers)
        self.players[pid] = player
        self._bindings[participant_id] = pid
        return player

    def rebind(self, player: Player, participant_id: str) -> Optional[str]:
        """Point ``participant_id`` at an existing record. Returns the participant it replaced."""
        old = self.participant_of(player.id)
        if old is not None:
            del self._bindings[old]
        self._bindings[participant_id] = player.id
        return old

    def unbind(self, participant_id: str) -> None:
        self._bindings.pop(participant_id, None)

    def get(self, player_id: str) -> Optional[Player]:
        return self.players.get(player_id)

    def by_participant(self, participant_id: str) -> Optional[Player]:
        pid = self._bindings.get(participant_id)
        return self.players.get(pid) if pid else None

    def by_name(self, name: str) -> Optional[Player]:
        for p in self.players.values():
            if p.name == name:
                return p
        return None

    def participant_of(self, player_id: str) -> Optional[str]:
        for participant_id, pid in self._bindings.items():
            if pid == player_id:
                return participant_id
        return None

    def participants(self) -> List[str]:
        return list(self._bindings.keys())

    def alive(self) -> List[Player]:
        return [p for p in self.players.values() if p.alive]

    def dead(self) -> List[Player]:
        return [p for p in self.players.values() if not p.alive]

    def dead_count(self) -> int:
        return len(self.dead())

    def crewmates(self) -> List[Player]:
        return [p for p in self.players.values() if p.role == Role.CREWMATE]

    def imposters(self) -> List[Player]:
        return [p for p in self.players.values() if p.role == Role.IMPOSTER]


def assign_roles(roster: Roster, imposter_count: int, rng: random.Random) -> None:
    if any(p.role is not None for p in roster):
        raise ValueError("roles already assigned")
    ids = list(roster.players.keys())
    rng.shuffle(ids)
    count = max(1, min(imposter_count, len(ids) - 1))
    imposters = set(ids[:count])
    for pid in ids:
        roster.players[pid].role = Role.IMPOSTER if pid in imposters else Role.CREWMATE
