"""EDI file transfer clients.

Directory layout under a supplier's catalog root:

    <root>/            uploads land here
    <root>/pending/    claimed by a sync run (staging)
    <root>/success/    fully applied (or skipped as already applied)
    <root>/failed/     validation or processing failure

Claiming an upload hard-links it into pending/ and then unlinks the original.
os.link never replaces an existing name, so a taken pending/ name moves on to
the next "-N" suffix. Only one run can unlink the original; a run that finds
it already gone drops its own link and skips the upload.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from catalog_sync.edi.csv_parser import parse_products
from catalog_sync.edi.timestamps import extract_timestamp, format_stamp
from catalog_sync.models import Supplier, SupplierAuth

logger = logging.getLogger(__name__)

_EDI_LOCAL_ROOT = os.environ.get("EDI_LOCAL_ROOT", "./edi")

PENDING_DIR = "pending"
SUCCESS_DIR = "success"
FAILED_DIR = "failed"


@runtime_checkable
class FileTransferClient(Protocol):
    """What the ingestion pipeline needs from a supplier's file drop (local or SFTP)."""

    def stage_incoming(self) -> list[str]:
        ...

    def list_pending_files(self) -> list[str]:
        ...

    def fetch_and_parse(self, name: str) -> list[dict[str, Any]]:
        ...

    def move_to_success(self, name: str) -> None:
        ...

    def move_to_failed(self, name: str) -> None:
        ...


class LocalFileTransferClient:
    """File drop on a locally mounted directory."""

    def __init__(self, root: str | Path, suffix: str = ".csv"):
        self.root = Path(root)
        self.suffix = suffix.lower()
        for sub in (PENDING_DIR, SUCCESS_DIR, FAILED_DIR):
            (self.root / sub).mkdir(parents=True, exist_ok=True)

    def _matches(self, path: Path) -> bool:
        return path.is_file() and path.suffix.lower() == self.suffix

    def _pending_name(self, path: Path) -> str:
        """Uploads without a timestamp in the name get their modification time appended."""
        if extract_timestamp(path.name) is not None:
            return path.name
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return f"{path.stem}_{format_stamp(mtime)}{path.suffix}"

    def _claim(self, path: Path) -> str:
        """Hard-link the upload into pending/ under a free name, then unlink the original.

        Raises:
            FileNotFoundError: Another run claimed the upload first.
        """
        name = Path(self._pending_name(path))
        candidate, counter = name.name, 1
        while True:
            target = self.root / PENDING_DIR / candidate
            try:
                os.link(path, target)
                break
            except FileExistsError:
                candidate = f"{name.stem}-{counter}{name.suffix}"
                counter += 1
        try:
            os.unlink(path)
        except FileNotFoundError:
            # Both runs linked before either unlinked; the other run owns the upload.
            os.unlink(target)
            raise
        return candidate

    def stage_incoming(self) -> list[str]:
        staged: list[str] = []
        for path in sorted(self.root.iterdir()):
            if not self._matches(path):
                continue
            try:
                name = self._claim(path)
            except FileNotFoundError:
                logger.info("Upload %s claimed by another run, skipping", path.name)
                continue
            staged.append(name)
        if staged:
            logger.info("Staged %d upload(s) into %s", len(staged), self.root / PENDING_DIR)
        return staged

    def list_pending_files(self) -> list[str]:
        pending = self.root / PENDING_DIR
        return sorted(p.name for p in pending.iterdir() if self._matches(p))

    def fetch_and_parse(self, name: str) -> list[dict[str, Any]]:
        with open(self.root / PENDING_DIR / name, newline="", encoding="utf-8-sig") as fh:
            return parse_products(fh)

    def _move(self, name: str, folder: str) -> None:
        (self.root / PENDING_DIR / name).replace(self.root / folder / name)

    def move_to_success(self, name: str) -> None:
        self._move(name, SUCCESS_DIR)

    def move_to_failed(self, name: str) -> None:
        self._move(name, FAILED_DIR)


def default_transfer_factory(supplier: Supplier, auth: SupplierAuth) -> FileTransferClient:
    """Local client rooted at EDI_LOCAL_ROOT/<supplier_code>/<directory_catalog>."""
    root = Path(_EDI_LOCAL_ROOT) / supplier.supplier_code
    catalog_dir = str(auth.auth.get("directory_catalog") or "").strip("/")
    if catalog_dir:
        root = root / catalog_dir
    return LocalFileTransferClient(root)
