from __future__ import annotations

from typing import List

from crewparty.errors import InvalidAction
from crewparty.roster import Player, Role
from crewparty.session import HOST, ROOM, Notice, Session

TASKS_PER_PLAYER = 6


def task_progress(session: Session, tasks_per_player: int = TASKS_PER_PLAYER) -> float:
    """Percentage of crewmate tasks done across the session. Imposters never count."""
    crew = session.roster.crewmates()
    if not crew:
        return 0.0
    done = sum(p.tasks_completed for p in crew)
    return 100.0 * done / (tasks_per_player * len(crew))


def record_task_completion(
    session: Session, player: Player, tasks_per_player: int = TASKS_PER_PLAYER
) -> List[Notice]:
    if not session.started:
        raise InvalidAction("Game has not started")
    if player.role != Role.CREWMATE:
        raise InvalidAction("Only crewmates have tasks")
    if not player.alive:
        raise InvalidAction("Ghosts cannot complete tasks")
    if player.tasks_completed >= tasks_per_player:
        raise InvalidAction("All tasks already completed")

    player.tasks_completed += 1
    progress = task_progress(session, tasks_per_player)
    return [
        Notice(ROOM, "task-progress", {"progress": progress}),
        Notice(HOST, "host-ping", {"kind": "task", "message": f"{player.name} completed a task", "progress": progress}),
        Notice(player.id, "task-completed", {"completed": player.tasks_completed, "total": tasks_per_player}),
    ]
