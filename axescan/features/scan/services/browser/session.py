import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.chrome.webdriver import WebDriver
from webdriver_manager.chrome import ChromeDriverManager

from axescan.features.scan.errors import SessionAcquisitionError
from axescan.platform.config import settings

logger = logging.getLogger(__name__)

# The scanner injects axe-core into arbitrary pages; their CSP and
# same-origin rules must not get in the way.
SECURITY_BYPASS_ARGS = (
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
)


@dataclass(frozen=True)
class LaunchProfile:
    """Everything that differs between a local Chrome and a serverless one."""
    name: str
    arguments: Tuple[str, ...]
    window_size: Tuple[int, int]
    binary_location: Optional[str] = None
    driver_path: Optional[str] = None
    use_driver_manager: bool = False
    # "eager" returns from get() at DOMContentLoaded; the navigator adds its own waits
    page_load_strategy: str = "eager"
    experimental_options: dict = field(default_factory=dict)

    def build_options(self) -> Options:
        options = Options()
        for argument in self.arguments:
            options.add_argument(argument)
        for argument in SECURITY_BYPASS_ARGS:
            if argument not in self.arguments:
                options.add_argument(argument)
        width, height = self.window_size
        options.add_argument(f"--window-size={width},{height}")
        options.page_load_strategy = self.page_load_strategy
        if self.binary_location:
            options.binary_location = self.binary_location
        for key, value in self.experimental_options.items():
            options.add_experimental_option(key, value)
        return options

    def build_service(self) -> Optional[Service]:
        if self.driver_path:
            return Service(executable_path=self.driver_path)
        if self.use_driver_manager:
            return Service(ChromeDriverManager().install())
        return None


def local_profile() -> LaunchProfile:
    return LaunchProfile(
        name="local",
        arguments=(
            "--headless=new",
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--disable-features=VizDisplayCompositor",
            "--disable-background-timer-throttling",
            "--disable-backgrounding-occluded-windows",
            "--disable-renderer-backgrounding",
            "--disable-blink-features=AutomationControlled",
        ),
        window_size=(1920, 1080),
        binary_location=settings.CHROME_BINARY_PATH,
        driver_path=settings.CHROMEDRIVER_PATH,
        use_driver_manager=not settings.CHROMEDRIVER_PATH,
    )


def serverless_profile() -> LaunchProfile:
    return LaunchProfile(
        name="serverless",
        arguments=(
            "--headless=new",
            "--no-sandbox",
            "--single-process",
            "--no-zygote",
            "--disable-gpu",
            "--disable-dev-shm-usage",
            "--disable-extensions",
            "--hide-scrollbars",
            "--mute-audio",
            "--use-gl=swiftshader",
        ),
        window_size=(1280, 720),
        binary_location=settings.SERVERLESS_CHROME_BINARY_PATH,
        driver_path=settings.SERVERLESS_CHROMEDRIVER_PATH,
    )


def resolve_launch_profile(environment: Optional[str] = None) -> LaunchProfile:
    environment = environment or settings.BROWSER_ENVIRONMENT
    if environment == "serverless":
        return serverless_profile()
    if environment == "local":
        return local_profile()
    raise ValueError(f"Unknown browser environment: {environment}")


class BrowserSession:
    """One launched Chrome. Selenium drives a single page per driver."""

    def __init__(self, driver: WebDriver, profile: LaunchProfile):
        self.driver = driver
        self.profile = profile
        self._closed = False

    def new_page(self) -> WebDriver:
        try:
            self.driver.execute_cdp_cmd("Page.setBypassCSP", {"enabled": True})
        except WebDriverException as e:
            # Pages without a strict CSP still accept the injected script
            logger.warning(f"Could not enable CSP bypass: {e}")
        return self.driver

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.driver.quit()
        except Exception as e:
            logger.warning(f"Error while quitting browser ({self.profile.name}): {e}")


class BrowserLauncher:
    def __init__(self, profile: Optional[LaunchProfile] = None):
        self.profile = profile or resolve_launch_profile()

    def acquire(self) -> BrowserSession:
        """
        Launch Chrome with the configured profile.

        Caller is responsible for calling session.close().

        Raises:
            SessionAcquisitionError: Chrome or chromedriver could not start
        """
        logger.info(f"Launching browser with {self.profile.name} profile")
        try:
            options = self.profile.build_options()
            service = self.profile.build_service()
            if service is not None:
                driver = webdriver.Chrome(service=service, options=options)
            else:
                driver = webdriver.Chrome(options=options)
        except Exception as e:
            raise SessionAcquisitionError(f"Failed to launch browser: {e}") from e
        return BrowserSession(driver, self.profile)


@contextmanager
def browser_session(launcher: BrowserLauncher) -> Iterator[BrowserSession]:
    session = launcher.acquire()
    try:
        yield session
    finally:
        session.close()
