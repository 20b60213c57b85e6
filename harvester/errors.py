"""Exception hierarchy shared by the harvester modules."""

from __future__ import annotations

from typing import Optional


class HarvestError(Exception):
    """Base class for harvester failures carrying a stable error code."""

    def __init__(self, message: str, code: str = "HARVEST_ERROR"):
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        cause = self.__cause__
        if cause is not None:
            return f"{message} (caused by: {cause})"
        return message


class FetchError(HarvestError):
    """Raised when a page cannot be fetched or rendered."""

    def __init__(self, message: str, url: str = "", code: str = "FETCH_ERROR"):
        self.url = url
        super().__init__(message, code)


class FetchTimeoutError(FetchError):
    """Raised when fetching a page exceeds the configured timeout."""

    def __init__(self, message: str, url: str = "", timeout: float = 0.0):
        self.timeout = timeout
        super().__init__(message, url, code="TIMEOUT_ERROR")


class ConfigError(HarvestError):
    """Raised for invalid harvest configuration."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message, "CONFIG_ERROR")


class DependencyError(HarvestError):
    """Raised when a required runtime dependency (e.g. a browser) is missing."""

    def __init__(self, message: str, dependency: str = ""):
        self.dependency = dependency
        super().__init__(message, "DEPENDENCY_ERROR")
