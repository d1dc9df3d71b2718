"""
Scan error taxonomy.

Errors raised while a scan executes (session, navigation, rule engine) are
absorbed by the orchestrator into a `failed` scan record. StoreError is the
exception: with the store gone there is nothing to record the failure in,
so it always propagates to whoever supervises the work.
"""


class ScanError(Exception):
    """Base class for all scan pipeline errors."""


class InvalidInput(ScanError):
    """The URL handed to initiate() is malformed."""


class SessionAcquisitionError(ScanError):
    """The headless browser could not be launched."""


class NavigationError(ScanError):
    """The page failed to load under every wait tier."""


class RuleEngineUnavailable(ScanError):
    """No usable axe-core script could be obtained or injected."""


class RuleEngineExecutionError(ScanError):
    """axe-core threw or rejected while running in the page."""


class StoreError(ScanError):
    """The scan store is unreachable or rejected a write."""


class SchedulingError(ScanError):
    """The scan record exists but its execution could not be handed off."""


class ScanNotFound(ScanError):
    def __init__(self, scan_id: str):
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class ScanAlreadyTerminal(ScanError):
    def __init__(self, scan_id: str, status: str):
        super().__init__(f"Scan {scan_id} is already {status}")
        self.scan_id = scan_id
        self.status = status
