"""
Package manifest model — the declarative description of one package.

Loaded from a YAML manifest, this is the canonical truth about what
gets downloaded, how it is verified, and where its files land.
The model is frozen: a run reads it once and never mutates it.
"""

from __future__ import annotations

import re
import shlex
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# semver.org 2.0 grammar
SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# {word} placeholders in a URL template
PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")

VERSION_PLACEHOLDER = "version"

# Hex digest length → hashlib algorithm name
ALGORITHM_BY_LENGTH = {
    64: "sha256",
    96: "sha384",
    128: "sha512",
}
DIGEST_LENGTH = {algo: length for length, algo in ALGORITHM_BY_LENGTH.items()}

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class PlatformTag(str, Enum):
    """Architecture / OS tags a package may be restricted to."""

    ARM64 = "arm64"
    X86_64 = "x86_64"
    MACOS = "macos"
    LINUX = "linux"

    @property
    def axis(self) -> str:
        return "os" if self in (PlatformTag.MACOS, PlatformTag.LINUX) else "arch"


class InstallRole(str, Enum):
    """Where an install action puts its file."""

    PRIMARY_BINARY = "primary-binary"
    SYMLINK_ALIAS = "symlink-alias"


def parse_checksum(value: str) -> tuple[str, str]:
    """Split a checksum into ``(algorithm, lowercase hex)``.

    Accepts ``algo:hex`` or a bare hex digest whose length implies the
    algorithm (64 → sha256, 96 → sha384, 128 → sha512).

    Raises:
        ValueError: Empty, non-hex, wrong length, or a placeholder
            value (every character the same, e.g. all zeros).
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("checksum is empty")

    if ":" in raw:
        algo, digest = raw.split(":", 1)
        algo = algo.strip().lower()
        digest = digest.strip()
        if algo not in DIGEST_LENGTH:
            raise ValueError(
                f"unsupported checksum algorithm '{algo}' "
                f"(expected one of: {', '.join(sorted(DIGEST_LENGTH))})"
            )
    else:
        algo, digest = "", raw

    if not _HEX_RE.match(digest):
        raise ValueError("checksum must be a hex digest")

    if algo:
        if len(digest) != DIGEST_LENGTH[algo]:
            raise ValueError(
                f"{algo} checksum must be {DIGEST_LENGTH[algo]} hex characters, "
                f"got {len(digest)}"
            )
    else:
        algo = ALGORITHM_BY_LENGTH.get(len(digest), "")
        if not algo:
            raise ValueError(
                f"checksum length {len(digest)} does not match any supported "
                f"digest ({', '.join(f'{a}={n}' for a, n in sorted(DIGEST_LENGTH.items()))})"
            )

    digest = digest.lower()
    if len(set(digest)) == 1:
        raise ValueError(
            "checksum is a placeholder value; set the real digest of the "
            "release archive before installing"
        )
    return algo, digest


def _is_plain_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


class InstallAction(BaseModel):
    """One step of file placement.

    ``primary-binary``: ``source`` is the path inside the archive,
    ``name`` the file name under ``bin/`` (defaults to the source's
    base name).

    ``symlink-alias``: ``name`` is the alias under ``bin/``,
    ``source`` the primary binary name it points to.
    """

    model_config = ConfigDict(frozen=True)

    role: InstallRole
    source: str = ""
    name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _expand_short_form(cls, data: Any) -> Any:
        # - primary-binary: stck
        # - symlink-alias: git-stck
        if isinstance(data, dict) and "role" not in data and len(data) == 1:
            (key, value), = data.items()
            role = str(key).replace("_", "-")
            if role == InstallRole.PRIMARY_BINARY.value:
                return {"role": role, "source": value}
            if role == InstallRole.SYMLINK_ALIAS.value:
                return {"role": role, "name": value}
        return data

    @model_validator(mode="after")
    def _fill_names(self) -> InstallAction:
        if self.role is InstallRole.PRIMARY_BINARY:
            if not self.source:
                raise ValueError("primary-binary action needs a source path")
            if not self.name:
                object.__setattr__(self, "name", self.source.rstrip("/").rsplit("/", 1)[-1])
        elif not self.name:
            raise ValueError("symlink-alias action needs an alias name")
        if not _is_plain_name(self.name):
            raise ValueError(f"install name '{self.name}' must be a plain file name")
        return self

    def describe(self) -> str:
        if self.role is InstallRole.PRIMARY_BINARY:
            return f"primary-binary {self.source} -> bin/{self.name}"
        return f"symlink-alias bin/{self.name} -> {self.source}"


class SmokeTest(BaseModel):
    """Post-install liveness check: a command and an output substring."""

    model_config = ConfigDict(frozen=True)

    command: str
    expect: str

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, v: str) -> str:
        try:
            words = shlex.split(v)
        except ValueError as e:
            raise ValueError(f"test command cannot be parsed: {e}") from e
        if not words:
            raise ValueError("test command is empty")
        return v

    @field_validator("expect")
    @classmethod
    def _expect_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("test expect must not be empty")
        return v

    @property
    def argv(self) -> list[str]:
        return shlex.split(self.command)

    @property
    def binary_name(self) -> str:
        """Installed binary the command invokes (``{bin}/`` prefix stripped)."""
        first = self.argv[0]
        if first.startswith("{bin}/"):
            first = first[len("{bin}/"):]
        return first


class PackageManifest(BaseModel):
    """Root package description — loaded from a manifest file.

    If it isn't declared here, the installer doesn't touch it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    homepage: str = ""
    version: str
    platform: tuple[PlatformTag, ...] = ()
    url: str
    checksum: str
    install: tuple[InstallAction, ...] = Field(min_length=1)
    test: SmokeTest

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Homebrew-style `sha256:` key
        if "checksum" not in data and "sha256" in data:
            value = data.pop("sha256")
            data["checksum"] = f"sha256:{value}" if isinstance(value, str) and ":" not in value else value
        # An unquoted all-digit digest comes out of YAML as an int
        if isinstance(data.get("checksum"), int):
            raise ValueError("checksum must be a quoted hex string")
        if isinstance(data.get("platform"), str):
            data["platform"] = [data["platform"]]
        return data

    @field_validator("name")
    @classmethod
    def _name_is_plain(cls, v: str) -> str:
        if not _is_plain_name(v):
            raise ValueError("name must be a plain identifier")
        return v

    @field_validator("version")
    @classmethod
    def _version_is_semver(cls, v: str) -> str:
        if not SEMVER_RE.match(v):
            raise ValueError(f"'{v}' is not a semantic version (e.g. 1.2.3)")
        return v

    @field_validator("url")
    @classmethod
    def _url_has_version_placeholder(cls, v: str) -> str:
        names = set(PLACEHOLDER_RE.findall(v))
        if names != {VERSION_PLACEHOLDER}:
            if not names:
                raise ValueError("url template must contain the {version} placeholder")
            extra = sorted(names - {VERSION_PLACEHOLDER})
            raise ValueError(
                "url template may only use the {version} placeholder, "
                f"found: {', '.join('{' + n + '}' for n in extra)}"
            )
        return v

    @field_validator("checksum")
    @classmethod
    def _checksum_is_set(cls, v: str) -> str:
        algo, digest = parse_checksum(v)
        return f"{algo}:{digest}"

    @model_validator(mode="after")
    def _check_actions(self) -> PackageManifest:
        primaries: list[str] = []
        seen: set[str] = set()
        resolved: list[InstallAction] = []
        for action in self.install:
            if action.name in seen:
                raise ValueError(f"install name '{action.name}' is declared twice")
            seen.add(action.name)
            if action.role is InstallRole.PRIMARY_BINARY:
                primaries.append(action.name)
                resolved.append(action)
                continue
            if not primaries:
                raise ValueError(
                    f"symlink-alias '{action.name}' must follow the primary binary it points to"
                )
            target = action.source or primaries[0]
            if target not in primaries:
                raise ValueError(
                    f"symlink-alias '{action.name}' points to '{target}', "
                    "which is not a declared primary binary"
                )
            resolved.append(action.model_copy(update={"source": target}))
        if not primaries:
            raise ValueError("install needs at least one primary-binary action")
        object.__setattr__(self, "install", tuple(resolved))

        if self.test.binary_name not in seen:
            raise ValueError(
                f"test command runs '{self.test.binary_name}', "
                "which is not an installed binary or alias"
            )
        return self

    # ── Derived values ───────────────────────────────────────────

    @property
    def checksum_algorithm(self) -> str:
        return self.checksum.split(":", 1)[0]

    @property
    def checksum_digest(self) -> str:
        return self.checksum.split(":", 1)[1]

    def resolved_url(self) -> str:
        """URL template with the concrete version substituted."""
        return self.url.replace("{" + VERSION_PLACEHOLDER + "}", self.version)

    def actions_for(self, role: InstallRole) -> list[InstallAction]:
        return [a for a in self.install if a.role is role]

    @property
    def primary_binary(self) -> str:
        return self.actions_for(InstallRole.PRIMARY_BINARY)[0].name
