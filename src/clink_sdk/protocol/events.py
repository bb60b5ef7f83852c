"""Envelope and filter models.

An envelope is a NIP-01 event: the request body travels encrypted in
``content`` and is addressed with a ``p`` tag. Responses reference the
request through an ``e`` tag, which is what the correlator filters on.

Example (signed request):
    {
        "id": "4f0c…",
        "pubkey": "79be…",
        "created_at": 1700000000,
        "kind": 21001,
        "tags": [["p", "c6b9…"], ["clink_version", "1"]],
        "content": "AgAAAA…",
        "sig": "a3f1…"
    }
"""

from __future__ import annotations

import hashlib
import json
import time

from pydantic import BaseModel, ConfigDict, Field

from .kinds import PROTOCOL_VERSION, SINCE_SLACK_SECONDS, VERSION_TAG, Kind


def now_seconds() -> int:
    return int(time.time())


class UnsignedEvent(BaseModel):
    """An envelope before signing."""

    pubkey: str
    created_at: int = Field(default_factory=now_seconds)
    kind: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str

    def serialize(self) -> str:
        """Canonical NIP-01 serialization the event id is computed over."""
        return json.dumps(
            [0, self.pubkey, self.created_at, self.kind, self.tags, self.content],
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def compute_id(self) -> str:
        return hashlib.sha256(self.serialize().encode("utf-8")).hexdigest()

    def tag_values(self, name: str) -> list[str]:
        """Values of every tag called *name* (first element after the name)."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]


class SignedEvent(UnsignedEvent):
    """An envelope with its content-addressed id and signature."""

    id: str
    sig: str


class Filter(BaseModel):
    """Subscription filter. Tag constraints serialize as ``#p`` / ``#e``."""

    model_config = ConfigDict(populate_by_name=True)

    ids: list[str] | None = None
    authors: list[str] | None = None
    kinds: list[int] | None = None
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    p: list[str] | None = Field(default=None, alias="#p")
    e: list[str] | None = Field(default=None, alias="#e")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def matches(self, event: SignedEvent) -> bool:
        """Check *event* against every constraint that is set."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        if self.p is not None and not set(self.p) & set(event.tag_values("p")):
            return False
        if self.e is not None and not set(self.e) & set(event.tag_values("e")):
            return False
        return True


# =============================================================================
# Builders
# =============================================================================


def new_request_event(content: str, from_pubkey: str, to_pubkey: str, kind: Kind | int) -> UnsignedEvent:
    """Build an unsigned request envelope addressed to *to_pubkey*."""
    return UnsignedEvent(
        pubkey=from_pubkey,
        created_at=now_seconds(),
        kind=int(kind),
        tags=[["p", to_pubkey], [VERSION_TAG, PROTOCOL_VERSION]],
        content=content,
    )


def new_response_filter(own_pubkey: str, event_id: str, kind: Kind | int) -> Filter:
    """Filter for responses to *event_id* addressed to *own_pubkey*."""
    return Filter(
        kinds=[int(kind)],
        since=now_seconds() - SINCE_SLACK_SECONDS,
        p=[own_pubkey],
        e=[event_id],
    )
