import logging
import secrets
from pathlib import Path
from typing import Optional

from axescan.platform.config import settings

logger = logging.getLogger(__name__)


class FilesystemEvidenceSink:
    """Stores violation screenshots in a directory served as static files."""

    def __init__(self, directory: str, url_prefix: str):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, scan_id: str, png: bytes) -> str:
        filename = f"{scan_id}-{secrets.token_hex(6)}.png"
        (self.directory / filename).write_bytes(png)
        return f"{self.url_prefix}/{filename}"


def build_evidence_sink(
    directory: Optional[str] = None,
    url_prefix: Optional[str] = None,
) -> Optional[FilesystemEvidenceSink]:
    """Returns None when there is nowhere to write; capture is then skipped."""
    directory = directory if directory is not None else settings.SCREENSHOT_DIR
    url_prefix = url_prefix if url_prefix is not None else settings.SCREENSHOT_URL_PREFIX
    if not directory:
        return None
    try:
        Path(directory).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Screenshot directory {directory} unavailable, evidence capture disabled: {e}")
        return None
    return FilesystemEvidenceSink(directory, url_prefix)
