import logging
import time
from typing import Callable, Optional

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.webdriver import WebDriver
from selenium.webdriver.support.ui import WebDriverWait

from axescan.features.scan.errors import NavigationError
from axescan.platform.config import settings

logger = logging.getLogger(__name__)

NETWORK_IDLE = "networkidle"
DOM_CONTENT_LOADED = "domcontentloaded"

_PAGE_STATE_SCRIPT = """
return [
    document.readyState,
    (performance.getEntriesByType('resource') || []).length
];
"""


class _NetworkIdle:
    """
    WebDriverWait condition: the document has finished loading and no new
    resource requests have started for `idle_window` seconds.
    """

    def __init__(self, idle_window: float, clock: Callable[[], float] = time.monotonic):
        self.idle_window = idle_window
        self.clock = clock
        self._last_count = None
        self._quiet_since = None

    def __call__(self, driver: WebDriver) -> bool:
        ready_state, resource_count = driver.execute_script(_PAGE_STATE_SCRIPT)
        now = self.clock()

        if ready_state != "complete" or resource_count != self._last_count:
            self._last_count = resource_count
            self._quiet_since = now if ready_state == "complete" else None
            return False

        if self._quiet_since is None:
            self._quiet_since = now
        return now - self._quiet_since >= self.idle_window


class NavigationController:
    """
    Loads a URL using a tiered wait strategy.

    1. Network idle: fast for simple sites, never fires for sites with
       long-polling or analytics beacons.
    2. DOMContentLoaded plus a short settle delay for late rendering.

    Both tiers failing raises NavigationError. There is no retry.
    """

    def __init__(
        self,
        network_idle_timeout: Optional[float] = None,
        dom_content_timeout: Optional[float] = None,
        settle_delay: Optional[float] = None,
        idle_window: Optional[float] = None,
        poll_frequency: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.network_idle_timeout = network_idle_timeout if network_idle_timeout is not None else settings.NAVIGATION_NETWORK_IDLE_TIMEOUT
        self.dom_content_timeout = dom_content_timeout if dom_content_timeout is not None else settings.NAVIGATION_DOM_CONTENT_TIMEOUT
        self.settle_delay = settle_delay if settle_delay is not None else settings.NAVIGATION_SETTLE_DELAY
        self.idle_window = idle_window if idle_window is not None else settings.NAVIGATION_IDLE_WINDOW
        self.poll_frequency = poll_frequency
        self.sleep = sleep

    def navigate(self, page: WebDriver, url: str) -> str:
        """
        Navigate `page` to `url`.

        Returns:
            The name of the tier that succeeded.

        Raises:
            NavigationError: The page did not load under either tier
        """
        logger.info(f"Navigating to {url} (waiting for network idle)")
        try:
            self._wait_for_network_idle(page, url)
            logger.info(f"Loaded {url} with {NETWORK_IDLE} strategy")
            return NETWORK_IDLE
        except (TimeoutException, WebDriverException) as e:
            logger.warning(f"Network idle wait failed for {url}, falling back to {DOM_CONTENT_LOADED}: {_describe(e)}")

        try:
            self._wait_for_dom_content(page, url)
        except (TimeoutException, WebDriverException) as e:
            raise NavigationError(f"Failed to load page: {_describe(e)}") from e

        logger.info(f"Loaded {url} with {DOM_CONTENT_LOADED} strategy")
        return DOM_CONTENT_LOADED

    def _wait_for_network_idle(self, page: WebDriver, url: str) -> None:
        started = time.monotonic()
        page.set_page_load_timeout(self.network_idle_timeout)
        page.get(url)

        remaining = self.network_idle_timeout - (time.monotonic() - started)
        if remaining <= 0:
            raise TimeoutException(f"Network idle timeout after {self.network_idle_timeout}s")

        WebDriverWait(page, remaining, poll_frequency=self.poll_frequency).until(
            _NetworkIdle(self.idle_window),
            message=f"Network did not go idle within {self.network_idle_timeout}s",
        )

    def _wait_for_dom_content(self, page: WebDriver, url: str) -> None:
        page.set_page_load_timeout(self.dom_content_timeout)
        page.get(url)
        # Let late client-side rendering finish
        self.sleep(self.settle_delay)


def _describe(error: Exception) -> str:
    message = getattr(error, "msg", None) or str(error)
    return message.strip() or error.__class__.__name__
