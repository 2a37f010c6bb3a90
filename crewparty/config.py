from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "CREWPARTY_"


@dataclass(frozen=True)
class GameConfig:
    discussion_seconds: float = 60
    vote_seconds: float = 15
    meeting_cooldown: float = 60
    tasks_per_player: int = 6
    task_win_percent: float = 75
    numbers_per_player: int = 6
    number_max: int = 15
    min_players: int = 2
    max_imposters: int = 3
    name_max_len: int = 24
    code_length: int = 6
    max_photo_chars: int = 10 * 1024 * 1024

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GameConfig":
        """Build a config from ``CREWPARTY_*`` variables, clamping each to a sane range."""
        env = os.environ if env is None else env
        kwargs = {}
        if ENV_PREFIX + "DISCUSSION_SECONDS" in env:
            kwargs["discussion_seconds"] = max(10, min(300, int(env[ENV_PREFIX + "DISCUSSION_SECONDS"])))
        if ENV_PREFIX + "VOTE_SECONDS" in env:
            kwargs["vote_seconds"] = max(5, min(120, int(env[ENV_PREFIX + "VOTE_SECONDS"])))
        if ENV_PREFIX + "MEETING_COOLDOWN" in env:
            kwargs["meeting_cooldown"] = max(0, min(600, int(env[ENV_PREFIX + "MEETING_COOLDOWN"])))
        if ENV_PREFIX + "TASK_WIN_PERCENT" in env:
            kwargs["task_win_percent"] = max(1, min(100, int(env[ENV_PREFIX + "TASK_WIN_PERCENT"])))
        if ENV_PREFIX + "MAX_PHOTO_CHARS" in env:
            kwargs["max_photo_chars"] = max(1024, int(env[ENV_PREFIX + "MAX_PHOTO_CHARS"]))
        return cls(**kwargs)


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if env is None else env
        return cls(
            host=env.get(ENV_PREFIX + "HOST", cls.host),
            port=int(env.get("PORT", env.get(ENV_PREFIX + "PORT", cls.port))),
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", cls.log_level).upper(),
        )
