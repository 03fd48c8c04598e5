"""Exceptions raised by the detection engine and its collaborators."""


class SentinelError(Exception):
    """Base exception for AMU Sentinel errors"""
    pass


class ConfigurationError(SentinelError):
    """Invalid or unsafe runtime configuration"""
    pass


class FarmDataError(SentinelError):
    """Farm record lacks what a detector needs; the farm is skipped, not the run"""
    pass


class AlertContractError(SentinelError, ValueError):
    """Alert payload or request violates the alert contract (type, severity, status)"""
    pass


class InvalidStatusTransition(AlertContractError):
    """Requested lifecycle transition is not allowed from the alert's current status"""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move alert from '{current}' to '{requested}'")


class AlertNotFoundError(AlertContractError, LookupError):
    """No alert exists with the requested id"""
    pass


class WeatherProviderError(SentinelError):
    """Forecast could not be fetched or parsed for a single location"""
    pass


class DetectionRunError(SentinelError):
    """A detection run could not proceed at all"""

    def __init__(self, job: str, reason: str):
        self.job = job
        self.reason = reason
        super().__init__(f"{job} failed: {reason}")
