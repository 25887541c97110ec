"""
File-backed collaborators: the PDF template source and the filled-PDF
snapshot store.
"""

import re
from pathlib import Path
from typing import Optional

from formplay.core.config import settings
from formplay.core.exceptions import NotFound, Unavailable, ValidationError
from formplay.core.logging import logger

TEMPLATE_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


class TemplateStore:
    """Canonical PDF templates addressed by a stable key, e.g. ``tps-vanilla``."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory or settings.storage.templates_dir)

    def path_for(self, key: str) -> Path:
        if not TEMPLATE_KEY_PATTERN.match(key):
            raise ValidationError(f"Invalid template key: {key!r}")
        return self.directory / f"{key}.pdf"

    def get(self, key: str) -> bytes:
        """
        Read template bytes.

        Raises:
            NotFound: If no template is stored under ``key``
        """
        path = self.path_for(key)
        if not path.is_file():
            logger.warning(f"PDF template not found: {path}")
            raise NotFound("PDF template not found")
        logger.debug(f"Serving PDF template from: {path}")
        return path.read_bytes()


class PdfSnapshotStore:
    """Filled PDF snapshots, one file per report."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory or settings.storage.pdf_dir)

    def path_for(self, report_id: int) -> Path:
        return self.directory / f"tps_report_{int(report_id)}.pdf"

    def save(self, report_id: int, data: bytes) -> str:
        """
        Persist a snapshot and return its stored path.

        Raises:
            Unavailable: If the file cannot be written
        """
        path = self.path_for(report_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store PDF snapshot for report {report_id}: {e}")
            raise Unavailable(f"PDF snapshot for report {report_id} could not be stored") from e
        logger.info(f"Stored PDF snapshot for report {report_id} at {path}")
        return str(path)

    def retrieve(self, report_id: int) -> bytes:
        path = self.path_for(report_id)
        if not path.is_file():
            raise NotFound("No PDF snapshot stored for this report")
        return path.read_bytes()
