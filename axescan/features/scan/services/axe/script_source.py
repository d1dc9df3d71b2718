import logging
import threading
from pathlib import Path
from typing import Optional

import httpx

from axescan.features.scan.errors import RuleEngineUnavailable
from axescan.platform.config import settings

logger = logging.getLogger(__name__)


class AxeScriptSource:
    """
    Resolves the axe-core script body that gets injected into pages.

    Uses the bundled copy unless cdnjs reports a newer release, in which case
    that release is downloaded. Whatever was resolved first is reused for the
    lifetime of the source.
    """

    def __init__(
        self,
        bundled_path: Optional[str] = None,
        bundled_version: Optional[str] = None,
        prefer_latest: Optional[bool] = None,
        version_api_url: Optional[str] = None,
        cdn_url_template: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.bundled_path = bundled_path if bundled_path is not None else settings.AXE_SCRIPT_PATH
        self.bundled_version = bundled_version if bundled_version is not None else settings.AXE_BUNDLED_VERSION
        self.prefer_latest = prefer_latest if prefer_latest is not None else settings.AXE_PREFER_LATEST
        self.version_api_url = version_api_url or settings.AXE_VERSION_API_URL
        self.cdn_url_template = cdn_url_template or settings.AXE_CDN_URL_TEMPLATE
        self.timeout = timeout if timeout is not None else settings.AXE_FETCH_TIMEOUT
        self._http_client = http_client
        self._script: Optional[str] = None
        self._lock = threading.Lock()

    def load(self) -> str:
        """
        Raises:
            RuleEngineUnavailable: neither the bundled nor a downloaded script is available
        """
        with self._lock:
            if self._script is None:
                self._script = self._resolve()
            return self._script

    def _resolve(self) -> str:
        latest = self.latest_version() if self.prefer_latest else None
        logger.info(f"Bundled axe-core version: {self.bundled_version}, latest: {latest}")

        if latest and latest != self.bundled_version:
            logger.info(f"Version mismatch, downloading axe-core {latest}")
            script = self.download(latest)
            if script:
                return script
            logger.warning(f"Download of axe-core {latest} failed, falling back to bundled copy")

        script = self.read_bundled()
        if script:
            return script

        raise RuleEngineUnavailable("Failed to load axe-core from any source")

    def latest_version(self) -> Optional[str]:
        try:
            response = self._get(self.version_api_url, params={"fields": "version"})
            response.raise_for_status()
            return response.json().get("version")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch latest axe-core version: {e}")
            return None

    def download(self, version: str) -> Optional[str]:
        url = self.cdn_url_template.format(version=version)
        try:
            response = self._get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch axe-core {version} from CDN: {e}")
            return None
        logger.info(f"Downloaded axe-core v{version} from CDN")
        return response.text or None

    def read_bundled(self) -> Optional[str]:
        if not self.bundled_path:
            return None
        try:
            return Path(self.bundled_path).read_text(encoding="utf-8") or None
        except OSError as e:
            logger.warning(f"Could not read bundled axe-core at {self.bundled_path}: {e}")
            return None

    def _get(self, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return self._http_client.get(url, timeout=self.timeout, **kwargs)
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            return client.get(url, **kwargs)
