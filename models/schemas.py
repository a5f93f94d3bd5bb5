from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PushKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionPayload(BaseModel):
    """The browser's PushSubscription.toJSON() shape."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: str = Field(..., min_length=1)
    expiration_time: Optional[float] = Field(None, alias="expirationTime")
    keys: PushKeys

    def to_capability(self) -> dict:
        """Blob handed to the registry; pywebpush accepts it as subscription_info."""
        return self.model_dump(by_alias=True)


class RegisterRequest(BaseModel):
    subscription: PushSubscriptionPayload
    locations: List[str] = Field(..., min_length=1)


class UpdateRegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription: Optional[PushSubscriptionPayload] = None
    locations: List[str] = Field(default_factory=list)
    remove_locations: List[str] = Field(default_factory=list, alias="removeLocations")
