from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from crewparty.errors import InvalidAction, NotFound
from crewparty.roster import Player
from crewparty.session import HOST, Notice, Session


@dataclass
class Photo:
    id: int
    player_id: str
    sender: str
    data: str
    time: float
    approved: Optional[bool] = None

    @property
    def reviewed(self) -> bool:
        return self.approved is not None


def submit_photo(session: Session, player: Player, data: Any, now: float, max_chars: int) -> List[Notice]:
    if not isinstance(data, str) or not data:
        raise InvalidAction("Photo payload must be a non-empty string")
    if len(data) > max_chars:
        raise InvalidAction("Photo is too large")

    photo = Photo(id=len(session.photos) + 1, player_id=player.id, sender=player.name, data=data, time=now)
    session.photos.append(photo)
    return [
        Notice(HOST, "photo-received", {
            "photo_id": photo.id,
            "player_id": player.id,
            "from": player.name,
            "data": data,
        }),
        Notice(player.id, "photo-sent", {"photo_id": photo.id}),
    ]


def pending_photos(session: Session) -> List[Photo]:
    return [p for p in session.photos if not p.reviewed]


def respond_to_photo(session: Session, photo_id: Any, approved: bool) -> List[Notice]:
    """Host verdict on a photo. Only the submitter is told; game state is untouched."""
    photo = next((p for p in session.photos if p.id == photo_id), None)
    if photo is None:
        raise NotFound("Photo not found")
    if photo.reviewed:
        raise InvalidAction("Photo already reviewed")
    photo.approved = bool(approved)
    return [Notice(photo.player_id, "photo-response", {"photo_id": photo.id, "approved": photo.approved})]
