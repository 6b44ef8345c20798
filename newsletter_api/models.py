from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscribeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None


class SubscriptionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    subscribed_at: str = Field(alias="subscribedAt")


class SubscribeResponse(BaseModel):
    success: bool = True
    message: str
    data: SubscriptionData


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None


class Health(BaseModel):
    status: str
    message: str
    timestamp: str
    database: Literal["Connected", "Disconnected"]
