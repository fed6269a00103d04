# app/releases/external_id.py
from __future__ import annotations

from typing import Sequence
from uuid import UUID

from services.errors import InvalidRequestError

_SEP = "|"


def encode_external_id(release_id: UUID, winning_ids: Sequence[UUID]) -> str:
    """
    "<release id>|<winning id>,<winning id>,..." is what the provider echoes
    back on settlement webhooks.
    """
    return f"{release_id}{_SEP}{','.join(str(w) for w in winning_ids)}"


def parse_external_id(value: str | None) -> tuple[UUID, list[UUID]]:
    """
    Inverse of encode_external_id. A bare release id (no winning ids) is
    accepted too; callers then resolve winnings through the release.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidRequestError("missing externalId")

    head, _, tail = raw.partition(_SEP)
    try:
        release_id = UUID(head)
        winning_ids = [UUID(w) for w in tail.split(",") if w.strip()]
    except ValueError as exc:
        raise InvalidRequestError(f"malformed externalId: {raw}") from exc

    return release_id, winning_ids
