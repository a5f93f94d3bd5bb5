# core/errors.py
from typing import Optional
from uuid import UUID


class WeatherAppError(Exception):
    """Base class for errors raised by the summary pipeline."""


class LocationConfigError(WeatherAppError):
    """Supported-location configuration is unusable (fatal at startup)."""


class SubscriptionNotFound(WeatherAppError):
    def __init__(self, subscription_id: UUID):
        super().__init__(f"subscription {subscription_id} not found")
        self.subscription_id = subscription_id


# --- transient upstream failures: logged, retried on the next tick ---
class UpstreamError(WeatherAppError):
    pass


class WeatherFetchError(UpstreamError):
    pass


class SummarizationError(UpstreamError):
    pass


# --- push delivery failures ---
class DeliveryError(WeatherAppError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidPushCapability(DeliveryError):
    """The push endpoint is gone or the capability blob is unusable. Permanent."""


class TransientDeliveryError(DeliveryError):
    """Network failure or an unexpected push service response."""


class MalformedPayloadError(DeliveryError):
    """The push service rejected the payload itself (400/413)."""
