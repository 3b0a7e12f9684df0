"""Exception types raised inside the scan pipeline."""

from __future__ import annotations


class DarkScanError(Exception):
    """Base class for DarkScan errors."""


class ConfigLoadError(DarkScanError):
    """The category config could not be read."""


class StaleReferenceError(DarkScanError):
    """A candidate's source node left the document before it was marked."""


class VerifierUnavailableError(DarkScanError):
    """The semantic verifier cannot be reached."""

