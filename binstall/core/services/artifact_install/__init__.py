"""
Artifact install service — package re-exports.

Layers, leaf first:

    domain (pure)  →  execution (I/O)  →  orchestration (state machine)

    from binstall.core.services.artifact_install import install_package
"""

# ── L1: Domain ──
from binstall.core.services.artifact_install.domain.platform import (  # noqa: F401
    check_platform,
    host_tags,
)

# ── L4: Execution ──
from binstall.core.services.artifact_install.execution.extract import (  # noqa: F401
    detect_archive_format,
    extract,
)
from binstall.core.services.artifact_install.execution.fetch import (  # noqa: F401
    adopt_local_archive,
    fetch,
)
from binstall.core.services.artifact_install.execution.installer import install  # noqa: F401
from binstall.core.services.artifact_install.execution.integrity import (  # noqa: F401
    compute_checksum,
    verify,
    verify_file,
)
from binstall.core.services.artifact_install.execution.smoke_test import validate  # noqa: F401

# ── L5: Orchestration ──
from binstall.core.services.artifact_install.orchestration.pipeline import (  # noqa: F401
    InstallPipeline,
    InstallReport,
    PipelineState,
    install_many,
    install_package,
)
