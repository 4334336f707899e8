"""
L4 Execution — Archive download.

Resolves the manifest URL, checks the platform precondition, and
streams the archive into the run's scratch directory while hashing
it.  One GET per run; no retries.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import time
import urllib.error
import urllib.request
from pathlib import Path
from urllib.parse import unquote, urlparse

from binstall import __version__
from binstall.core.errors import HTTPStatusError, NetworkError
from binstall.core.models.artifact import DownloadedArtifact
from binstall.core.models.manifest import PackageManifest, PlatformTag
from binstall.core.services.artifact_install.domain.platform import check_platform

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
USER_AGENT = f"binstall/{__version__}"
_CHUNK = 64 * 1024


class _BoundedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Follows at most ``MAX_REDIRECTS`` hops, then raises HTTPError."""

    max_redirections = MAX_REDIRECTS


def build_opener() -> urllib.request.OpenerDirector:
    """urllib opener with bounded redirects.

    The default handler chain keeps ``ProxyHandler``, which honours
    ``http_proxy`` / ``https_proxy`` / ``no_proxy``.
    """
    return urllib.request.build_opener(_BoundedRedirectHandler())


def artifact_filename(url: str) -> str:
    """Last path segment of the URL, or a generic name."""
    name = Path(unquote(urlparse(url).path)).name
    return name or "artifact"


def fetch(
    manifest: PackageManifest,
    scratch_dir: Path,
    *,
    timeout: float = 60.0,
    opener: urllib.request.OpenerDirector | None = None,
    host: list[PlatformTag] | None = None,
) -> DownloadedArtifact:
    """Download the manifest's archive into ``scratch_dir``.

    Args:
        manifest: Validated package manifest.
        scratch_dir: Private per-run directory (created by the caller).
        timeout: Seconds allowed for connect, for each read, and for
            the whole download.
        opener: urllib opener override (tests, custom transports).
        host: Host platform tags override (detected when None).

    Returns:
        DownloadedArtifact with the observed digest filled in.

    Raises:
        PlatformMismatchError: Host is excluded; raised before any I/O.
        HTTPStatusError: Non-2xx answer or too many redirects.
        NetworkError: Connection failure, timeout, or truncated body.
    """
    check_platform(manifest.platform, host)

    url = manifest.resolved_url()
    dest = scratch_dir / artifact_filename(url)
    opener = opener or build_opener()
    hasher = hashlib.new(manifest.checksum_algorithm)
    size = 0

    logger.info("Fetching %s", url)
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    # Socket timeouts bound each read; the deadline bounds the whole body.
    deadline = time.monotonic() + timeout
    try:
        with opener.open(request, timeout=timeout) as resp:
            status = resp.getcode()
            # file:// responses carry no status
            if status is not None and not 200 <= status < 300:
                raise HTTPStatusError(url, status, getattr(resp, "reason", ""))
            read = getattr(resp, "read1", resp.read)
            with open(dest, "wb") as f:
                for chunk in iter(lambda: read(_CHUNK), b""):
                    if time.monotonic() > deadline:
                        raise TimeoutError(f"download exceeded {timeout:g}s")
                    f.write(chunk)
                    hasher.update(chunk)
                    size += len(chunk)
    except HTTPStatusError:
        dest.unlink(missing_ok=True)
        raise
    except urllib.error.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise HTTPStatusError(url, e.code, str(e.reason)) from e
    except urllib.error.URLError as e:
        dest.unlink(missing_ok=True)
        if isinstance(e.reason, TimeoutError):
            raise NetworkError(f"Timed out after {timeout:g}s fetching {url}") from e
        raise NetworkError(f"Cannot fetch {url}: {e.reason}") from e
    except TimeoutError as e:
        dest.unlink(missing_ok=True)
        raise NetworkError(f"Timed out after {timeout:g}s fetching {url}") from e
    except (http.client.HTTPException, OSError) as e:
        dest.unlink(missing_ok=True)
        raise NetworkError(f"Download of {url} failed: {e}") from e

    artifact = DownloadedArtifact(
        path=dest,
        url=url,
        algorithm=manifest.checksum_algorithm,
        digest=hasher.hexdigest(),
        size_bytes=size,
    )
    logger.debug("Downloaded %s (%d bytes, %s=%s)", dest, size, artifact.algorithm, artifact.digest)
    return artifact


def adopt_local_archive(
    manifest: PackageManifest,
    archive: Path,
    scratch_dir: Path,
    *,
    host: list[PlatformTag] | None = None,
) -> DownloadedArtifact:
    """Use a pre-downloaded archive in place of a network fetch.

    The file is copied into ``scratch_dir`` so the run owns (and
    later deletes) its copy; the original is left untouched.  The
    same platform precondition applies, and the verifier still runs.

    Raises:
        PlatformMismatchError: Host is excluded.
        NetworkError: The local archive cannot be read.
    """
    check_platform(manifest.platform, host)

    url = manifest.resolved_url()
    dest = scratch_dir / artifact_filename(url)
    hasher = hashlib.new(manifest.checksum_algorithm)
    size = 0
    try:
        with open(archive, "rb") as src, open(dest, "wb") as out:
            for chunk in iter(lambda: src.read(_CHUNK), b""):
                out.write(chunk)
                hasher.update(chunk)
                size += len(chunk)
    except OSError as e:
        dest.unlink(missing_ok=True)
        raise NetworkError(f"Cannot read local archive {archive}: {e}") from e

    logger.info("Using local archive %s for %s", archive, url)
    return DownloadedArtifact(
        path=dest,
        url=archive.resolve().as_uri(),
        algorithm=manifest.checksum_algorithm,
        digest=hasher.hexdigest(),
        size_bytes=size,
    )
