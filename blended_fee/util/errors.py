from __future__ import annotations


class FeeEstimatorError(Exception):
    pass


class ProviderError(FeeEstimatorError):
    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class SourceUnavailable(ProviderError):
    """The source could not be reached, timed out or answered with an error status."""


class InvalidData(ProviderError):
    """The source answered but the payload is structurally invalid."""


class NoRelevantSources(FeeEstimatorError):
    def __init__(self, message: str = "No relevant data points available") -> None:
        super().__init__(message)


class ConfigError(FeeEstimatorError):
    pass
