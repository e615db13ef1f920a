# link_scout/__init__.py
"""
LinkScout package initializer.
Defines package version and exposes the scan API and the CLI.
"""
__version__ = "0.1.0"

from link_scout.config import CooperationOptions, ScanOptions, ScannerConfig
from link_scout.crawler.models import Finding, SourceType
from link_scout.errors import (
    BrowserFallbackRequiredError,
    InvalidURLError,
    RobotsDisallowedError,
    ScanError,
)
from link_scout.scanner import Scanner, start_scan

# Expose CLI entry point
from link_scout.cli import cli as main_cli

__all__ = [
    "__version__",
    "BrowserFallbackRequiredError",
    "CooperationOptions",
    "Finding",
    "InvalidURLError",
    "RobotsDisallowedError",
    "ScanError",
    "ScanOptions",
    "Scanner",
    "ScannerConfig",
    "SourceType",
    "main_cli",
    "start_scan",
]
