"""
Scan models package.
"""
from axescan.features.scan.models.scan import Scan, ScanStatus

__all__ = ["Scan", "ScanStatus"]
