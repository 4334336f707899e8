"""
InstallReceipt — the persisted record of a completed install.

Serialized to ``<prefix>/var/binstall/receipts/<name>.json`` once a run
reaches ``done``.  Informational only: the installer never reads a
receipt to decide what to do.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstallReceipt(BaseModel):
    """What got installed, from where, and when."""

    schema_version: int = 1

    name: str
    version: str
    url: str
    checksum: str

    prefix: str
    binaries: dict[str, str] = Field(default_factory=dict)
    aliases: dict[str, str] = Field(default_factory=dict)

    installed_at: str = Field(default_factory=_now_iso)
