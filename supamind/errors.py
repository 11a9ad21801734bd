"""Exception types shared across the function layer."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when the deployment is missing required configuration."""


class CounterStoreError(RuntimeError):
    """Raised when the rate-limit counter store cannot be consulted."""


class PipelineError(RuntimeError):
    """Raised when an automation pipeline rejects or cannot accept a dispatch."""

    def __init__(self, pipeline: str, description: str, *, status_code: int | None = None) -> None:
        message = f"Pipeline '{pipeline}' dispatch failed: {description}"
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message)
        self.pipeline = pipeline
        self.description = description
        self.status_code = status_code
