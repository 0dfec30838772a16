"""Pydantic models for the account webhooks.

Defines the user-sync response and the request bodies for pool and profile
updates.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PoolType = Literal["lap", "recreational", "infinity", "kids", "spa"]
PoolSize = Literal["small", "medium", "large", "custom"]
PoolLocation = Literal["indoor", "outdoor", "rooftop", "backyard"]


class PoolSettings(BaseModel):
    """Pool description the assistant uses as context for its analysis."""
    model_config = ConfigDict(populate_by_name=True)

    pool_type: PoolType = Field(..., alias="poolType")
    pool_size: PoolSize = Field(..., alias="poolSize")
    location: PoolLocation

    @model_validator(mode="after")
    def check_combination(self) -> "PoolSettings":
        if self.location == "rooftop" and self.pool_size == "large":
            raise ValueError("Rooftop pools cannot be large size")
        if self.location == "indoor" and self.pool_size == "large":
            raise ValueError("Large pools are not recommended for indoor locations")
        return self


class ProfileUpdate(BaseModel):
    """Nickname change submitted from the profile dialog."""
    nickname: str = Field(..., min_length=2, max_length=50)

    @field_validator("nickname", mode="before")
    @classmethod
    def strip_nickname(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserProfile(BaseModel):
    """Response of the create-user webhook.

    The webhook uses mixed-case keys; every field is optional because a new
    user has none of them yet.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    nickname: str | None = Field(None, alias="Nickname")
    agent_id: str | None = None
    pool_type: str | None = Field(None, alias="PoolType")
    pool_size: str | None = Field(None, alias="PoolSize")
    location: str | None = Field(None, alias="Location")

    def initial_pool_settings(self) -> PoolSettings | None:
        """Stored pool settings, or None if the user never saved any.

        Values the dialog does not offer (legacy free text) are dropped rather
        than failing the whole sync.
        """
        if not (self.pool_type or self.pool_size or self.location):
            return None
        try:
            return PoolSettings(
                pool_type=(self.pool_type or "").lower(),
                pool_size=(self.pool_size or "").lower(),
                location=(self.location or "").lower(),
            )
        except ValueError:
            return None
