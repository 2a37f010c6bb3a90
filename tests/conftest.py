"""Shared fixtures and utilities for Crew Party tests."""
from __future__ import annotations

import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from crewparty.config import GameConfig
from crewparty.game import GameServer
from crewparty.roster import Player, Role, Status
from crewparty.session import Session
from server import create_app


class RecordingChannel:
    """Channel that keeps every delivered message per participant."""

    def __init__(self) -> None:
        self.sent: List[tuple] = []

    async def send(self, participant_id: str, message: Dict[str, Any]) -> None:
        self.sent.append((participant_id, message))

    def to(self, participant_id: str, type_: Optional[str] = None) -> List[Dict[str, Any]]:
        return [m for pid, m in self.sent if pid == participant_id and (type_ is None or m["type"] == type_)]

    def last(self, participant_id: str, type_: Optional[str] = None) -> Optional[Dict[str, Any]]:
        msgs = self.to(participant_id, type_)
        return msgs[-1] if msgs else None

    def of_type(self, type_: str) -> List[tuple]:
        return [(pid, m) for pid, m in self.sent if m["type"] == type_]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def game(channel: RecordingChannel, clock: FakeClock):
    """Fresh GameServer for each test, with a fixed seed and a controllable clock."""
    server = GameServer(channel, GameConfig(), clock=clock, rng=random.Random(1234))
    yield server
    await server.close()


HOST_ID = "host"


async def new_room(game: GameServer, imposter_count: int = 1, host_id: str = HOST_ID) -> Session:
    return await game.create_game(host_id, imposter_count)


async def add_players(game: GameServer, session: Session, count: int, names: List[str] | None = None) -> List[str]:
    """Join players to a room and return their participant ids."""
    if names is None:
        names = [f"Player{i+1}" for i in range(count)]

    participant_ids = []
    for name in names[:count]:
        pid = f"conn-{name}"
        await game.join_game(pid, session.code, name)
        participant_ids.append(pid)
    return participant_ids


async def started_room(game: GameServer, count: int = 5, imposter_count: int = 1) -> tuple:
    session = await new_room(game, imposter_count)
    pids = await add_players(game, session, count)
    await game.start_game(HOST_ID)
    return session, pids


def player_of(session: Session, participant_id: str) -> Player:
    return session.roster.by_participant(participant_id)


def participants_by_role(session: Session, role: Role) -> List[str]:
    return [session.roster.participant_of(p.id) for p in session.roster if p.role == role]


def count_roles(session: Session) -> Dict[Role, int]:
    counts: Dict[Role, int] = {}
    for player in session.roster:
        if player.role:
            counts[player.role] = counts.get(player.role, 0) + 1
    return counts


def kill_player(session: Session, participant_id: str) -> None:
    """Kill a player directly (for testing win conditions)."""
    session.roster.by_participant(participant_id).status = Status.DEAD


def set_roles(session: Session, imposters: List[str]) -> None:
    """Force roles for specific scenarios: listed participants are imposters, the rest crewmates."""
    for p in session.roster:
        p.role = Role.IMPOSTER if session.roster.participant_of(p.id) in imposters else Role.CREWMATE


@pytest.fixture
def app():
    return create_app(GameConfig())


@pytest.fixture
async def client(app):
    """Async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
