"""
Client State Store

Per-client state a browser would otherwise keep in local storage:
- identity: which participant this client logs as, per challenge
- admin key: the admin token of challenges this client created
- recent challenges: last visited challenges, newest first, capped

Keyed by an opaque client id (X-Client-Id header). Values are JSON documents
in Redis, or in process memory when Redis is not available.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from agora.core.cache import get_state_backend
from agora.core.config import settings
from agora.models.challenge import Challenge, Participant
from agora.services.logger import logger


class RecentChallenge(BaseModel):
    id: str
    name: str
    share_token: str
    start_date: date
    end_date: date
    visited_at: datetime


class ClientStateStore:
    KEY_PREFIX = "agora"

    def __init__(self, backend, recent_limit: Optional[int] = None) -> None:
        self.backend = backend
        self.recent_limit = (
            recent_limit if recent_limit is not None else settings.RECENT_CHALLENGES_LIMIT
        )

    # -- keys ---------------------------------------------------------------

    def _identity_key(self, client_id: str, challenge_id: str) -> str:
        return f"{self.KEY_PREFIX}:{client_id}:participant:{challenge_id}"

    def _admin_key(self, client_id: str, challenge_id: str) -> str:
        return f"{self.KEY_PREFIX}:{client_id}:admin:{challenge_id}"

    def _recent_key(self, client_id: str) -> str:
        return f"{self.KEY_PREFIX}:{client_id}:recent_challenges"

    def _read_json(self, key: str) -> Any:
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable client state at {key}")
            self.backend.delete(key)
            return None

    # -- identity -------------------------------------------------------------

    def get_identity(self, client_id: str, challenge_id: str) -> Optional[Participant]:
        key = self._identity_key(client_id, challenge_id)
        data = self._read_json(key)
        if data is None:
            return None
        try:
            return Participant.model_validate(data)
        except ValidationError:
            self.backend.delete(key)
            return None

    def set_identity(self, client_id: str, participant: Participant) -> None:
        self.backend.set(
            self._identity_key(client_id, participant.challenge_id),
            participant.model_dump_json(),
        )

    def clear_identity(self, client_id: str, challenge_id: str) -> None:
        self.backend.delete(self._identity_key(client_id, challenge_id))

    # -- admin key ------------------------------------------------------------

    def remember_admin_token(self, client_id: str, challenge_id: str, admin_token: str) -> None:
        self.backend.set(self._admin_key(client_id, challenge_id), json.dumps(admin_token))

    def get_admin_token(self, client_id: str, challenge_id: str) -> Optional[str]:
        token = self._read_json(self._admin_key(client_id, challenge_id))
        return token if isinstance(token, str) else None

    # -- recent challenges ----------------------------------------------------

    def recent_challenges(self, client_id: str) -> List[RecentChallenge]:
        data = self._read_json(self._recent_key(client_id))
        if not isinstance(data, list):
            return []

        items = []
        for item in data:
            try:
                items.append(RecentChallenge.model_validate(item))
            except ValidationError:
                continue
        items.sort(key=lambda item: item.visited_at, reverse=True)
        return items

    def record_visit(
        self, client_id: str, challenge: Challenge, visited_at: Optional[datetime] = None
    ) -> List[RecentChallenge]:
        """Replace the challenge's entry in the client's history, newest first, and cap it."""
        visit = RecentChallenge(
            id=challenge.id,
            name=challenge.name,
            share_token=challenge.share_token,
            start_date=challenge.start_date,
            end_date=challenge.end_date,
            visited_at=visited_at or datetime.now(timezone.utc),
        )
        history = [item for item in self.recent_challenges(client_id) if item.id != challenge.id]
        history.insert(0, visit)
        history.sort(key=lambda item: item.visited_at, reverse=True)
        history = history[: self.recent_limit]

        self.backend.set(
            self._recent_key(client_id),
            json.dumps([item.model_dump(mode="json") for item in history]),
        )
        return history


_client_state_store: Optional[ClientStateStore] = None


def get_client_state_store() -> ClientStateStore:
    """FastAPI dependency: shared store on Redis when available, memory otherwise."""
    global _client_state_store

    if _client_state_store is None:
        _client_state_store = ClientStateStore(get_state_backend())

    return _client_state_store
