"""Wire constants shared by every request family."""

from __future__ import annotations

from enum import Enum, IntEnum

PROTOCOL_VERSION = "1"
VERSION_TAG = "clink_version"

# Response filters look back this far to tolerate relay clock drift.
SINCE_SLACK_SECONDS = 1


class Kind(IntEnum):
    """Event kinds. Requests and their responses share the same kind."""

    OFFER = 21001
    DEBIT = 21002
    MANAGE = 21003


class RequestFamily(str, Enum):
    """The three request families the protocol defines."""

    OFFER = "offer"
    DEBIT = "debit"
    MANAGE = "manage"

    @property
    def kind(self) -> Kind:
        return Kind[self.name]
