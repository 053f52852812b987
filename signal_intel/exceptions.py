"""
Error taxonomy for the signal pipeline.

- ConfigurationError: bad setup (missing API key, unknown preset). Raised at construction.
- SourceError: data source failure (HTTP / network). Caught per (chain, mode) by the orchestrator.
"""

from typing import Dict, Optional


class SignalIntelError(Exception):
    """Base error for the signal_intel package."""


class ConfigurationError(SignalIntelError):
    """Missing credential or invalid configuration."""


class SourceError(SignalIntelError):
    """Candidate source request failed."""

    def __init__(self, code: str, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self):
        return f"{self.code}: {self.message}"
