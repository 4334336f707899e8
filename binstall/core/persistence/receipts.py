"""
Install receipt persistence — atomic read/write of InstallReceipt.

Receipts live in ``<prefix>/var/binstall/receipts/<name>.json``.
Writes go to a temp file in the same directory and are renamed into
place, so a crash never leaves a half-written receipt.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from binstall.core.models.receipt import InstallReceipt

logger = logging.getLogger(__name__)

RECEIPT_DIR = Path("var") / "binstall" / "receipts"


def receipts_dir(prefix: Path) -> Path:
    """Receipt directory for an installation prefix."""
    return prefix / RECEIPT_DIR


def receipt_path(prefix: Path, name: str) -> Path:
    return receipts_dir(prefix) / f"{name}.json"


def save_receipt(receipt: InstallReceipt, prefix: Path) -> Path:
    """Write a receipt (atomic).  Overwrites a previous install's receipt.

    Returns:
        Path of the written file.
    """
    path = receipt_path(prefix, receipt.name)
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(receipt.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".receipt_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with open(_fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise

    logger.debug("Receipt saved to %s", path)
    return path


def load_receipt(path: Path) -> InstallReceipt | None:
    """Read one receipt, or None if missing or corrupt."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstallReceipt.model_validate(data)
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        logger.warning("Skipping unreadable receipt %s: %s", path, e)
        return None


def list_receipts(prefix: Path) -> list[InstallReceipt]:
    """All readable receipts under ``prefix``, sorted by package name."""
    directory = receipts_dir(prefix)
    if not directory.is_dir():
        return []
    receipts = []
    for path in sorted(directory.glob("*.json")):
        receipt = load_receipt(path)
        if receipt is not None:
            receipts.append(receipt)
    return receipts
