from __future__ import annotations


class ChartAnalysisError(Exception):
    """Base for the fatal failures a caller can see."""


class InferenceError(ChartAnalysisError):
    """Model call failed: transport, HTTP status, timeout or unexpected response shape."""

    def __init__(self, message: str, *, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class RenderError(ChartAnalysisError):
    """Chart artifact was not produced (browser failure or render timeout)."""


class InvalidSymbolError(RenderError):
    pass


class ChartNotFoundError(ChartAnalysisError):
    """No chart artifact stored under the given reference."""


class InvalidImageError(ChartAnalysisError):
    pass
