from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from crewparty.errors import Cooldown, InvalidAction
from crewparty.roster import Player, Status
from crewparty.session import HOST, ROOM, Notice, Session

DISCUSSION_SECONDS = 60
VOTE_SECONDS = 15
MEETING_COOLDOWN = 60

SKIP = "skip"


class MeetingType(str, Enum):
    EMERGENCY = "emergency"
    REPORT = "report"


class MeetingPhase(str, Enum):
    DISCUSSION = "discussion"
    VOTING = "voting"


@dataclass
class Meeting:
    id: int
    type: MeetingType
    called_by: str
    started_at: float
    phase_ends_at: float
    phase: MeetingPhase = MeetingPhase.DISCUSSION
    alive: List[Dict[str, Any]] = field(default_factory=list)
    dead: List[Dict[str, Any]] = field(default_factory=list)

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "called_by": self.called_by,
            "phase": self.phase.value,
            "started_at": self.started_at,
            "phase_ends_at": self.phase_ends_at,
        }


def parse_meeting_type(raw: Any) -> MeetingType:
    try:
        return MeetingType(raw)
    except ValueError:
        raise InvalidAction(f"Unknown meeting type: {raw!r}") from None


def request_meeting(
    session: Session,
    player: Player,
    meeting_type: MeetingType,
    now: float,
    cooldown: float = MEETING_COOLDOWN,
) -> List[Notice]:
    """A living player asks for a meeting. Only the host hears about it; no Meeting exists yet."""
    if not session.started:
        raise InvalidAction("Game has not started")
    if session.meeting is not None:
        raise InvalidAction("A meeting is already in progress")
    if not player.alive:
        raise InvalidAction("Ghosts cannot call meetings")
    if player.last_meeting_time is not None:
        elapsed = now - player.last_meeting_time
        if elapsed < cooldown:
            raise Cooldown(math.ceil(cooldown - elapsed))

    player.last_meeting_time = now
    return [
        Notice(HOST, "meeting-request", {
            "meeting_type": meeting_type.value,
            "called_by": player.name,
            "player_id": player.id,
        }),
    ]


def approve_meeting(
    session: Session,
    meeting_type: MeetingType,
    called_by: str,
    now: float,
    discussion_seconds: float = DISCUSSION_SECONDS,
    vote_seconds: float = VOTE_SECONDS,
) -> List[Notice]:
    if not session.started:
        raise InvalidAction("Game has not started")
    if session.meeting is not None:
        raise InvalidAction("A meeting is already in progress")

    session.meeting_seq += 1
    alive = [p.public() for p in session.roster.alive()]
    dead = [p.public() for p in session.roster.dead()]
    session.meeting = Meeting(
        id=session.meeting_seq,
        type=meeting_type,
        called_by=called_by,
        started_at=now,
        phase_ends_at=now + discussion_seconds,
        alive=alive,
        dead=dead,
    )
    session.votes = {}
    return [
        Notice(ROOM, "meeting-started", {
            "meeting_type": meeting_type.value,
            "called_by": called_by,
            "alive_players": alive,
            "dead_players": dead,
            "discussion_time": discussion_seconds,
            "vote_time": vote_seconds,
        }),
    ]


def _current(session: Session, meeting_id: int, phase: MeetingPhase) -> Optional[Meeting]:
    meeting = session.meeting
    if meeting is None or meeting.id != meeting_id or meeting.phase != phase:
        return None
    return meeting


def begin_voting(session: Session, meeting_id: int, now: float, vote_seconds: float = VOTE_SECONDS) -> List[Notice]:
    meeting = _current(session, meeting_id, MeetingPhase.DISCUSSION)
    if meeting is None:
        return []
    meeting.phase = MeetingPhase.VOTING
    meeting.phase_ends_at = now + vote_seconds
    return [Notice(ROOM, "voting-started", {"alive_players": meeting.alive, "vote_time": vote_seconds})]


def normalize_target(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise InvalidAction("Vote target must be a player id or skip")
    raw = raw.strip()
    if raw.lower() in (SKIP, ""):
        return None
    return raw


def cast_vote(session: Session, player: Player, raw_target: Any) -> List[Notice]:
    meeting = session.meeting
    if meeting is None or meeting.phase != MeetingPhase.VOTING:
        raise InvalidAction("Voting is not open")
    if not player.alive:
        raise InvalidAction("Ghosts cannot vote")
    target = normalize_target(raw_target)
    if target is not None:
        chosen = session.roster.get(target)
        if chosen is None or not chosen.alive:
            raise InvalidAction("Vote target must be a living player")

    # last vote wins
    session.votes[player.id] = target
    return [
        Notice(player.id, "vote-confirmed", {"target_id": target}),
        Notice(HOST, "host-ping", {"kind": "vote", "message": f"{player.name} voted"}),
    ]


def tally_votes(
    votes: Dict[str, Optional[str]], alive_ids: Iterable[str]
) -> Tuple[Optional[str], Dict[str, int], int]:
    """Count ballots; skip competes like a candidate and any tie for the top ejects nobody.

    Returns ``(ejected_id, counts_by_target, skip_count)``.
    """
    alive = set(alive_ids)
    counts: Counter = Counter()
    skips = 0
    for voter, target in votes.items():
        if voter not in alive:
            continue
        if target is None:
            skips += 1
        elif target in alive:
            counts[target] += 1

    candidates: List[Tuple[Optional[str], int]] = list(counts.items()) + [(None, skips)]
    top = max(c for _, c in candidates)
    leaders = [t for t, c in candidates if c == top]
    if top == 0 or len(leaders) > 1:
        return None, dict(counts), skips
    return leaders[0], dict(counts), skips


def close_voting(session: Session, meeting_id: int) -> List[Notice]:
    meeting = _current(session, meeting_id, MeetingPhase.VOTING)
    if meeting is None:
        return []

    alive_ids = [p.id for p in session.roster.alive()]
    ejected_id, counts, skips = tally_votes(session.votes, alive_ids)

    notices: List[Notice] = []
    ejected = None
    if ejected_id is not None:
        player = session.roster.get(ejected_id)
        player.kill(Status.VOTED_OUT)
        ejected = {"id": player.id, "name": player.name, "role": player.role.value if player.role else None}
        notices.append(Notice(player.id, "you-ejected"))

    session.meeting = None
    session.votes = {}
    notices.append(Notice(ROOM, "voting-results", {
        "ejected": ejected,
        "dead_count": session.roster.dead_count(),
        "vote_counts": counts,
        "skip_votes": skips,
    }))
    return notices
