from __future__ import annotations

import asyncio
import functools
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Protocol

from crewparty import media, meeting, tasks
from crewparty.config import GameConfig
from crewparty.errors import GameError, InvalidAction, NotFound, Unauthorized
from crewparty.registry import SessionRegistry
from crewparty.roster import Player, Status, assign_roles
from crewparty.rules import check_winner
from crewparty.session import HOST, ROOM, Notice, Session

logger = logging.getLogger(__name__)


class Channel(Protocol):
    async def send(self, participant_id: str, message: Dict[str, Any]) -> None:
        ...


def intent(fn):
    """Run an intent handler; a GameError becomes an ``error`` reply to the caller only."""

    @functools.wraps(fn)
    async def wrapper(self: "GameServer", participant_id: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await fn(self, participant_id, *args, **kwargs)
        except GameError as e:
            logger.info("Rejected %s from %s: %s", fn.__name__, participant_id, e.message)
            await self.channel.send(participant_id, e.to_message())
            return None

    return wrapper


class GameServer:
    """Routes participant intents to their session and delivers the resulting notices."""

    def __init__(
        self,
        channel: Channel,
        config: Optional[GameConfig] = None,
        registry: Optional[SessionRegistry] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.channel = channel
        self.config = config or GameConfig()
        self.registry = registry or SessionRegistry(self.config, rng=rng)
        self.rng = rng or self.registry.rng
        self.clock = clock
        self._timers: Dict[str, asyncio.Task] = {}

    # -- lookups ---------------------------------------------------------

    def _session_for(self, participant_id: str) -> Session:
        binding = self.registry.binding(participant_id)
        if binding is None:
            raise NotFound("Not in a game")
        return self.registry.lookup(binding.room_code)

    def _player_for(self, session: Session, participant_id: str) -> Player:
        player = session.roster.by_participant(participant_id)
        if player is None:
            raise NotFound("Player not found")
        return player

    def _require_host(self, session: Session, participant_id: str) -> None:
        if session.host_id != participant_id:
            raise Unauthorized("Only the host can do that")

    def _require_running(self, session: Session) -> None:
        if session.over:
            raise InvalidAction("Game is over")

    # -- delivery --------------------------------------------------------

    def _recipients(self, session: Session, to: str) -> List[str]:
        if to == HOST:
            return [session.host_id] if session.host_id else []
        if to == ROOM:
            ids = session.roster.participants()
            if session.host_id:
                ids.insert(0, session.host_id)
            return ids
        participant = session.roster.participant_of(to)
        return [participant] if participant else []

    async def _deliver(self, session: Session, notices: List[Notice]) -> None:
        for notice in notices:
            msg = notice.message()
            for participant_id in self._recipients(session, notice.to):
                await self.channel.send(participant_id, msg)

    async def _reply(self, participant_id: str, type_: str, **data: Any) -> None:
        await self.channel.send(participant_id, {"type": type_, **data})

    def _roster_public(self, session: Session, with_roles: bool = False) -> List[Dict[str, Any]]:
        players = []
        for p in session.roster:
            entry = p.public()
            if with_roles:
                entry["role"] = p.role.value if p.role else None
                entry["status"] = p.status.value
            players.append(entry)
        return players

    # -- win evaluation --------------------------------------------------

    def _settle(self, session: Session, notices: List[Notice]) -> List[Notice]:
        """Append a game-over notice when a team has just won."""
        if session.over:
            return notices
        winner = check_winner(session, self.config.task_win_percent, self.config.tasks_per_player)
        if winner is None:
            return notices
        session.winner = winner
        if session.meeting is not None:
            session.meeting = None
            session.votes = {}
        self._cancel_timer(session.code)
        logger.info("[%s] Game over: %s (%s)", session.code, winner.team, winner.reason)
        notices.append(Notice(ROOM, "game-over", {"winner": winner.team, "reason": winner.reason}))
        return notices

    # -- phase timers ----------------------------------------------------

    def _cancel_timer(self, code: str) -> None:
        task = self._timers.pop(code, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _schedule(self, session: Session, delay: float, step: Callable, meeting_id: int) -> None:
        self._cancel_timer(session.code)
        self._timers[session.code] = asyncio.create_task(self._fire(session, delay, step, meeting_id))

    async def _fire(self, session: Session, delay: float, step: Callable, meeting_id: int) -> None:
        await asyncio.sleep(delay)
        if self._timers.get(session.code) is asyncio.current_task():
            del self._timers[session.code]
        await step(session.code, meeting_id)

    async def advance_to_voting(self, code: str, meeting_id: int) -> None:
        session = self.registry.lookup(code)
        async with session.lock:
            notices = meeting.begin_voting(session, meeting_id, self.clock(), self.config.vote_seconds)
            if not notices:
                return
            logger.info("[%s] Voting opened for meeting %d", code, meeting_id)
            self._schedule(session, self.config.vote_seconds, self.finish_voting, meeting_id)
            await self._deliver(session, notices)

    async def finish_voting(self, code: str, meeting_id: int) -> None:
        session = self.registry.lookup(code)
        async with session.lock:
            notices = meeting.close_voting(session, meeting_id)
            if not notices:
                return
            self._cancel_timer(code)
            logger.info("[%s] Meeting %d closed", code, meeting_id)
            await self._deliver(session, self._settle(session, notices))

    async def close(self) -> None:
        tasks_ = list(self._timers.values())
        self._timers.clear()
        for task in tasks_:
            task.cancel()
        await asyncio.gather(*tasks_, return_exceptions=True)

    # -- intents ---------------------------------------------------------

    @intent
    async def check_room(self, participant_id: str, room_code: Any) -> None:
        exists, reason = self.registry.check_room(room_code)
        await self._reply(participant_id, "room-check-result", exists=exists, message=reason)

    @intent
    async def create_game(self, participant_id: str, imposter_count: Any = 1) -> Session:
        session = self.registry.create_session(imposter_count)
        self.registry.bind_host(session.code, participant_id)
        await self._reply(participant_id, "game-created", room_code=session.code, imposter_count=session.imposter_count)
        return session

    @intent
    async def rejoin_host(self, participant_id: str, room_code: Any) -> None:
        session = self.registry.lookup(room_code)
        async with session.lock:
            self.registry.bind_host(session.code, participant_id)
            logger.info("[%s] Host rejoined", session.code)
            await self._reply(participant_id, "player-joined", players=self._roster_public(session))
            if session.started:
                await self._reply(participant_id, "game-started-host", players=self._roster_public(session, with_roles=True))

    @intent
    async def join_game(self, participant_id: str, room_code: Any, name: Any) -> Player:
        session = self.registry.lookup(room_code)
        async with session.lock:
            player, rejoined = self.registry.join_or_rejoin(session.code, participant_id, name)
            if session.started:
                await self._reply(participant_id, "game-started", role=player.role.value, numbers=player.numbers,
                                  tasks=self.config.tasks_per_player)
                if not player.alive:
                    await self._reply(participant_id, "you-died")
                await self._reply(participant_id, "task-completed", completed=player.tasks_completed,
                                  total=self.config.tasks_per_player)
                await self._reply(participant_id, "task-progress", progress=self._progress(session))
                await self._reply(participant_id, "dead-count-updated", dead_count=session.roster.dead_count())
            else:
                await self._reply(participant_id, "joined-game", room_code=session.code, name=player.name,
                                  player_id=player.id, numbers=player.numbers, rejoined=rejoined)
            await self._deliver(session, [Notice(HOST, "player-joined", {"players": self._roster_public(session)})])
        return player

    @intent
    async def start_game(self, participant_id: str) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_host(session, participant_id)
            if session.started:
                raise InvalidAction("Game already started")
            if len(session.roster) < self.config.min_players:
                raise InvalidAction(f"Need at least {self.config.min_players} players")
            assign_roles(session.roster, session.imposter_count, self.rng)
            session.started = True
            logger.info("[%s] Game started with %d players", session.code, len(session.roster))

            notices = [
                Notice(p.id, "game-started", {"role": p.role.value, "numbers": p.numbers,
                                              "tasks": self.config.tasks_per_player})
                for p in session.roster
            ]
            notices.append(Notice(HOST, "game-started-host", {"players": self._roster_public(session, with_roles=True)}))
            await self._deliver(session, notices)

    @intent
    async def complete_task(self, participant_id: str) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_running(session)
            player = self._player_for(session, participant_id)
            notices = tasks.record_task_completion(session, player, self.config.tasks_per_player)
            await self._deliver(session, self._settle(session, notices))

    @intent
    async def call_meeting(self, participant_id: str, meeting_type: Any) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_running(session)
            player = self._player_for(session, participant_id)
            kind = meeting.parse_meeting_type(meeting_type)
            notices = meeting.request_meeting(session, player, kind, self.clock(), self.config.meeting_cooldown)
            logger.info("[%s] %s requested a %s meeting", session.code, player.name, kind.value)
            await self._deliver(session, notices)

    @intent
    async def start_meeting(self, participant_id: str, meeting_type: Any, called_by: Any) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_host(session, participant_id)
            self._require_running(session)
            kind = meeting.parse_meeting_type(meeting_type)
            if not isinstance(called_by, str) or not called_by.strip():
                raise InvalidAction("Meeting caller is required")
            notices = meeting.approve_meeting(
                session, kind, called_by.strip(), self.clock(),
                self.config.discussion_seconds, self.config.vote_seconds,
            )
            meeting_id = session.meeting.id
            logger.info("[%s] Meeting %d started (%s by %s)", session.code, meeting_id, kind.value, called_by)
            self._schedule(session, self.config.discussion_seconds, self.advance_to_voting, meeting_id)
            await self._deliver(session, notices)

    @intent
    async def vote(self, participant_id: str, target_id: Any = None) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_running(session)
            player = self._player_for(session, participant_id)
            await self._deliver(session, meeting.cast_vote(session, player, target_id))

    @intent
    async def mark_dead(self, participant_id: str, player_id: Any) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_host(session, participant_id)
            self._require_running(session)
            if not session.started:
                raise InvalidAction("Game has not started")
            player = session.roster.get(player_id) if isinstance(player_id, str) else None
            if player is None:
                raise NotFound("Player not found")
            if not player.alive:
                raise InvalidAction(f"{player.name} is already out")
            player.kill(Status.DEAD)
            logger.info("[%s] Host marked %s dead", session.code, player.name)
            await self._deliver(session, self._settle(session, self._death_notices(session, player)))

    @intent
    async def mark_self_dead(self, participant_id: str) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_running(session)
            if not session.started:
                raise InvalidAction("Game has not started")
            player = self._player_for(session, participant_id)
            if not player.alive:
                raise InvalidAction("Already out")
            player.kill(Status.DEAD)
            logger.info("[%s] %s marked themselves dead", session.code, player.name)
            notices = self._death_notices(session, player)
            notices.append(Notice(HOST, "host-ping", {"kind": "death",
                                                      "message": f"{player.name} marked themselves as dead"}))
            await self._deliver(session, self._settle(session, notices))

    def _death_notices(self, session: Session, player: Player) -> List[Notice]:
        dead_count = session.roster.dead_count()
        return [
            Notice(player.id, "you-died"),
            Notice(ROOM, "dead-count-updated", {"dead_count": dead_count}),
            Notice(HOST, "player-status-updated", {"player_id": player.id, "status": player.status.value,
                                                   "dead_count": dead_count}),
        ]

    @intent
    async def upload_photo(self, participant_id: str, photo_data: Any) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            player = self._player_for(session, participant_id)
            notices = media.submit_photo(session, player, photo_data, self.clock(), self.config.max_photo_chars)
            await self._deliver(session, notices)

    @intent
    async def photo_response(self, participant_id: str, photo_id: Any, approved: Any) -> None:
        session = self._session_for(participant_id)
        async with session.lock:
            self._require_host(session, participant_id)
            await self._deliver(session, media.respond_to_photo(session, photo_id, approved is True))

    @intent
    async def get_state(self, participant_id: str) -> Dict[str, Any]:
        session = self._session_for(participant_id)
        async with session.lock:
            state: Dict[str, Any] = {
                "room_code": session.code,
                "started": session.started,
                "task_progress": self._progress(session),
                "dead_count": session.roster.dead_count(),
                "meeting": session.meeting.public() if session.meeting else None,
                "winner": {"winner": session.winner.team, "reason": session.winner.reason} if session.winner else None,
            }
            if session.host_id == participant_id:
                state["players"] = self._roster_public(session, with_roles=True)
                state["pending_photos"] = len(media.pending_photos(session))
            else:
                player = self._player_for(session, participant_id)
                state.update({
                    "player_id": player.id,
                    "name": player.name,
                    "numbers": player.numbers,
                    "role": player.role.value if player.role else None,
                    "status": player.status.value,
                    "tasks_completed": player.tasks_completed,
                })
            await self._reply(participant_id, "state-update", **state)
            return state

    async def disconnect(self, participant_id: str) -> None:
        # Players stay in the roster so they can rejoin by name.
        binding = self.registry.binding(participant_id)
        if binding is not None:
            logger.info("[%s] Participant %s disconnected", binding.room_code, participant_id)

    def _progress(self, session: Session) -> float:
        return tasks.task_progress(session, self.config.tasks_per_player)
