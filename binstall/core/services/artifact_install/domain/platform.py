"""
L1 Domain — Platform constraint matching (pure).

Maps the running host onto the manifest's platform tags and decides
whether a package may be installed here.  ``host_tags`` detects the
running interpreter only when no ``machine`` / ``system`` is given.
"""

from __future__ import annotations

import platform as _platform

from binstall.core.errors import PlatformMismatchError
from binstall.core.models.manifest import PlatformTag

_ARCH_MAP = {
    "aarch64": PlatformTag.ARM64,
    "arm64": PlatformTag.ARM64,
    "x86_64": PlatformTag.X86_64,
    "amd64": PlatformTag.X86_64,
}

_OS_MAP = {
    "darwin": PlatformTag.MACOS,
    "linux": PlatformTag.LINUX,
}


def host_tags(machine: str | None = None, system: str | None = None) -> list[PlatformTag]:
    """Tags describing a host, e.g. ``[arm64, macos]``.

    Args:
        machine: ``platform.machine()`` value (detected when None).
        system: ``platform.system()`` value (detected when None).

    Unknown architectures or systems contribute no tag, so any
    constraint on that axis fails.
    """
    machine = (machine if machine is not None else _platform.machine()).lower()
    system = (system if system is not None else _platform.system()).lower()
    tags: list[PlatformTag] = []
    if machine in _ARCH_MAP:
        tags.append(_ARCH_MAP[machine])
    if system in _OS_MAP:
        tags.append(_OS_MAP[system])
    return tags


def check_platform(
    required: tuple[PlatformTag, ...] | list[PlatformTag],
    host: list[PlatformTag] | None = None,
) -> None:
    """Fail unless ``host`` satisfies ``required``.

    Tags are grouped by axis (arch, os).  For every axis the
    constraint mentions, the host must carry one of the listed tags.
    An empty constraint matches every host.

    Raises:
        PlatformMismatchError: On the first unsatisfied axis.
    """
    if not required:
        return
    host = host_tags() if host is None else host

    by_axis: dict[str, set[PlatformTag]] = {}
    for tag in required:
        by_axis.setdefault(tag.axis, set()).add(tag)

    for allowed in by_axis.values():
        if not allowed.intersection(host):
            raise PlatformMismatchError(
                [t.value for t in required],
                [t.value for t in host] or ["unknown"],
            )
