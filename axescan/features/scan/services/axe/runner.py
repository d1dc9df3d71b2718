import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.webdriver import WebDriver
from selenium.webdriver.common.by import By

from axescan.features.scan.errors import RuleEngineExecutionError, RuleEngineUnavailable
from axescan.features.scan.services.axe.evidence import FilesystemEvidenceSink
from axescan.features.scan.services.axe.script_source import AxeScriptSource
from axescan.platform.config import settings

logger = logging.getLogger(__name__)

_INJECT_SCRIPT = """
const script = document.createElement('script');
script.type = 'text/javascript';
script.text = arguments[0];
(document.head || document.documentElement).appendChild(script);
return typeof window.axe !== 'undefined' && typeof window.axe.run === 'function';
"""

_RUN_SCRIPT = """
const done = arguments[arguments.length - 1];
if (typeof window.axe === 'undefined') {
    done({error: 'axe-core not loaded'});
    return;
}
window.axe.run(document, function (err, results) {
    if (err) {
        done({error: (err && err.message) || String(err)});
        return;
    }
    done({violations: results.violations, passes: results.passes});
});
"""


@dataclass
class AxeResults:
    violations: List[Dict[str, Any]] = field(default_factory=list)
    passes: List[Dict[str, Any]] = field(default_factory=list)

    def as_payload(self) -> Dict[str, Any]:
        return {"violations": self.violations, "passes": self.passes}


class AxeRunner:
    def __init__(
        self,
        script_source: Optional[AxeScriptSource] = None,
        evidence_sink: Optional[FilesystemEvidenceSink] = None,
        capture_screenshots: Optional[bool] = None,
        run_timeout: Optional[float] = None,
    ):
        self.script_source = script_source or AxeScriptSource()
        self.evidence_sink = evidence_sink
        self.capture_screenshots = capture_screenshots if capture_screenshots is not None else settings.ENABLE_SCREENSHOTS
        self.run_timeout = run_timeout if run_timeout is not None else settings.AXE_RUN_TIMEOUT

    def run(self, page: WebDriver, scan_id: Optional[str] = None) -> AxeResults:
        """
        Inject axe-core into the loaded page and run it.

        Raises:
            RuleEngineUnavailable: the script could not be obtained or did not register
            RuleEngineExecutionError: axe.run failed inside the page
        """
        self._inject(page)

        logger.info(f"[{scan_id}] Running axe-core")
        page.set_script_timeout(self.run_timeout)
        try:
            raw = page.execute_async_script(_RUN_SCRIPT)
        except TimeoutException as e:
            raise RuleEngineExecutionError(f"axe-core did not finish within {self.run_timeout}s") from e
        except WebDriverException as e:
            raise RuleEngineExecutionError(f"axe-core execution failed: {e.msg or e}") from e

        raw = raw or {}
        if raw.get("error"):
            raise RuleEngineExecutionError(f"axe-core execution failed: {raw['error']}")

        results = AxeResults(
            violations=raw.get("violations") or [],
            passes=raw.get("passes") or [],
        )
        logger.info(f"[{scan_id}] axe-core found {len(results.violations)} violations, {len(results.passes)} passes")

        if self.capture_screenshots and scan_id and results.violations:
            if self.evidence_sink is None:
                logger.info(f"[{scan_id}] No evidence sink configured, skipping screenshots")
            else:
                logger.info(f"[{scan_id}] Capturing screenshots for {len(results.violations)} violations")
                self._capture_evidence(page, results.violations, scan_id)

        return results

    def _inject(self, page: WebDriver) -> None:
        script = self.script_source.load()
        try:
            registered = page.execute_script(_INJECT_SCRIPT, script)
        except WebDriverException as e:
            raise RuleEngineUnavailable(f"Failed to inject axe-core: {e.msg or e}") from e
        if not registered:
            raise RuleEngineUnavailable("axe-core was injected but window.axe is not available")

    def _capture_evidence(self, page: WebDriver, violations: List[Dict[str, Any]], scan_id: str) -> None:
        captured: Set[str] = set()

        for violation in violations:
            for node in violation.get("nodes") or []:
                target = node.get("target") or []
                element_key = ",".join(str(t) for t in target)
                if not target or element_key in captured:
                    continue

                selector = target[0]
                # Nested lists address iframes / shadow roots; not resolvable from the top document
                if not isinstance(selector, str):
                    continue

                try:
                    element = page.find_element(By.CSS_SELECTOR, selector)
                    if not element.is_displayed():
                        continue
                    node["screenshot"] = self.evidence_sink.store(scan_id, element.screenshot_as_png)
                    captured.add(element_key)
                except (WebDriverException, OSError) as e:
                    logger.warning(f"[{scan_id}] Failed to screenshot element {selector}: {e}")
