from __future__ import annotations

from typing import Optional

from crewparty.roster import Role
from crewparty.session import Session, Winner
from crewparty.tasks import TASKS_PER_PLAYER, task_progress

CREWMATES = "crewmates"
IMPOSTERS = "imposters"

TASK_WIN_PERCENT = 75.0


def check_winner(
    session: Session,
    task_win_percent: float = TASK_WIN_PERCENT,
    tasks_per_player: int = TASKS_PER_PLAYER,
) -> Optional[Winner]:
    if not session.started:
        return None
    if task_progress(session, tasks_per_player) >= task_win_percent:
        return Winner(CREWMATES, "Tasks completed!")
    alive = session.roster.alive()
    imposters = [p for p in alive if p.role == Role.IMPOSTER]
    crew = [p for p in alive if p.role == Role.CREWMATE]
    if len(imposters) == 0:
        return Winner(CREWMATES, "All imposters ejected!")
    if len(imposters) >= len(crew):
        return Winner(IMPOSTERS, "Imposters win!")
    return None
