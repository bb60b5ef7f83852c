"""SDK configuration.

Settings come from keyword arguments, the environment or a YAML file:

    CLINK_PRIVATE_KEY      hex private key
    CLINK_RELAYS           comma separated relay URLs
    CLINK_TO_PUBKEY        counterparty public key (hex)
    CLINK_TIMEOUT          default response timeout in seconds
    CLINK_PUBLISH_TIMEOUT  seconds to wait for each relay's OK
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

ENV_PREFIX = "CLINK_"


def _parse_relays(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [relay.strip() for relay in value if relay and relay.strip()]


def _parse_seconds(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class ClinkSettings:
    """Connection settings for ``ClinkSDK``."""

    private_key: str
    relays: list[str] = field(default_factory=list)
    to_pubkey: str = ""
    default_timeout_seconds: float | None = None
    publish_timeout_seconds: float = 10.0

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ClinkSettings:
        """Build settings from a plain mapping (YAML document or env values)."""
        private_key = data.get("private_key")
        if not private_key:
            raise ValueError("private_key is required")
        publish_timeout = _parse_seconds(data.get("publish_timeout_seconds"))
        return cls(
            private_key=str(private_key),
            relays=_parse_relays(data.get("relays")),
            to_pubkey=str(data.get("to_pubkey") or ""),
            default_timeout_seconds=_parse_seconds(data.get("default_timeout_seconds")),
            publish_timeout_seconds=publish_timeout if publish_timeout is not None else 10.0,
        )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClinkSettings:
        env = os.environ if environ is None else environ
        return cls.from_mapping(
            {
                "private_key": env.get(f"{ENV_PREFIX}PRIVATE_KEY"),
                "relays": env.get(f"{ENV_PREFIX}RELAYS"),
                "to_pubkey": env.get(f"{ENV_PREFIX}TO_PUBKEY"),
                "default_timeout_seconds": env.get(f"{ENV_PREFIX}TIMEOUT"),
                "publish_timeout_seconds": env.get(f"{ENV_PREFIX}PUBLISH_TIMEOUT"),
            }
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> ClinkSettings:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        return cls.from_mapping(data)
