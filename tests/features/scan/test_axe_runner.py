from unittest.mock import MagicMock

import pytest
from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException

from axescan.features.scan.errors import RuleEngineExecutionError, RuleEngineUnavailable
from axescan.features.scan.services.axe.evidence import FilesystemEvidenceSink, build_evidence_sink
from axescan.features.scan.services.axe.runner import AxeRunner


def _script_source(script="/* axe */"):
    source = MagicMock()
    source.load.return_value = script
    return source


def _page(run_result, registered=True):
    page = MagicMock()
    page.execute_script.return_value = registered
    page.execute_async_script.return_value = run_result
    return page


def _violation(rule_id, *targets):
    return {
        "id": rule_id,
        "impact": "serious",
        "nodes": [{"target": list(target), "html": "<div></div>"} for target in targets],
    }


def test_run_returns_normalized_results():
    page = _page({"violations": None, "passes": [{"id": "document-title", "nodes": []}]})
    runner = AxeRunner(script_source=_script_source(), capture_screenshots=False, run_timeout=5)

    results = runner.run(page, "scan-1")

    assert results.violations == []
    assert results.passes == [{"id": "document-title", "nodes": []}]
    assert results.as_payload() == {"violations": [], "passes": results.passes}
    page.set_script_timeout.assert_called_once_with(5)
    assert page.execute_script.call_args[0][1] == "/* axe */"


def test_unregistered_axe_raises_unavailable():
    page = _page({}, registered=False)
    runner = AxeRunner(script_source=_script_source(), capture_screenshots=False)

    with pytest.raises(RuleEngineUnavailable):
        runner.run(page)
    page.execute_async_script.assert_not_called()


def test_injection_failure_raises_unavailable():
    page = _page({})
    page.execute_script.side_effect = WebDriverException("script blocked")
    runner = AxeRunner(script_source=_script_source(), capture_screenshots=False)

    with pytest.raises(RuleEngineUnavailable):
        runner.run(page)


def test_script_source_failure_propagates():
    source = MagicMock()
    source.load.side_effect = RuleEngineUnavailable("Failed to load axe-core from any source")
    runner = AxeRunner(script_source=source, capture_screenshots=False)

    with pytest.raises(RuleEngineUnavailable):
        runner.run(_page({}))


def test_axe_error_raises_execution_error():
    page = _page({"error": "Axe is already running"})
    runner = AxeRunner(script_source=_script_source(), capture_screenshots=False)

    with pytest.raises(RuleEngineExecutionError) as exc:
        runner.run(page)
    assert "Axe is already running" in str(exc.value)


def test_axe_timeout_raises_execution_error():
    page = _page({})
    page.execute_async_script.side_effect = TimeoutException("script timeout")
    runner = AxeRunner(script_source=_script_source(), capture_screenshots=False, run_timeout=1)

    with pytest.raises(RuleEngineExecutionError):
        runner.run(page)


def test_screenshots_once_per_element():
    violations = [
        _violation("color-contrast", ["#a"], ["#b"]),
        _violation("link-name", ["#a"]),
    ]
    page = _page({"violations": violations, "passes": []})
    element = MagicMock()
    element.is_displayed.return_value = True
    element.screenshot_as_png = b"png"
    page.find_element.return_value = element
    sink = MagicMock()
    sink.store.side_effect = ["/static/screenshots/1.png", "/static/screenshots/2.png"]

    runner = AxeRunner(script_source=_script_source(), evidence_sink=sink, capture_screenshots=True)
    results = runner.run(page, "scan-1")

    assert sink.store.call_count == 2
    assert results.violations[0]["nodes"][0]["screenshot"] == "/static/screenshots/1.png"
    assert results.violations[0]["nodes"][1]["screenshot"] == "/static/screenshots/2.png"
    assert "screenshot" not in results.violations[1]["nodes"][0]


def test_screenshot_failures_do_not_fail_the_scan():
    violations = [_violation("image-alt", ["img.hero"], ["img.logo"])]
    page = _page({"violations": violations, "passes": []})
    page.find_element.side_effect = NoSuchElementException("gone")
    sink = MagicMock()

    runner = AxeRunner(script_source=_script_source(), evidence_sink=sink, capture_screenshots=True)
    results = runner.run(page, "scan-1")

    assert len(results.violations) == 1
    sink.store.assert_not_called()


def test_hidden_and_frame_targets_are_skipped():
    violations = [_violation("region", ["#hidden"], [["iframe", "#inner"]])]
    page = _page({"violations": violations, "passes": []})
    element = MagicMock()
    element.is_displayed.return_value = False
    page.find_element.return_value = element
    sink = MagicMock()

    runner = AxeRunner(script_source=_script_source(), evidence_sink=sink, capture_screenshots=True)
    runner.run(page, "scan-1")

    page.find_element.assert_called_once()
    sink.store.assert_not_called()


def test_capture_skipped_without_sink():
    violations = [_violation("image-alt", ["img"])]
    page = _page({"violations": violations, "passes": []})

    runner = AxeRunner(script_source=_script_source(), evidence_sink=None, capture_screenshots=True)
    runner.run(page, "scan-1")

    page.find_element.assert_not_called()


def test_filesystem_sink_writes_png(tmp_path):
    sink = FilesystemEvidenceSink(str(tmp_path), "/static/screenshots/")

    url = sink.store("scan-1", b"\x89PNG")

    assert url.startswith("/static/screenshots/scan-1-")
    assert url.endswith(".png")
    filename = url.rsplit("/", 1)[1]
    assert (tmp_path / filename).read_bytes() == b"\x89PNG"


def test_build_evidence_sink_without_directory():
    assert build_evidence_sink(directory="", url_prefix="/x") is None


def test_build_evidence_sink_creates_directory(tmp_path):
    target = tmp_path / "shots"
    sink = build_evidence_sink(directory=str(target), url_prefix="/shots")
    assert sink is not None
    assert target.is_dir()
