from datetime import datetime

from pydantic import BaseModel, Field, StrictInt


class LocationInput(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1, max_length=200)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ActivityInput(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    target_count: int = Field(ge=1, le=100)
    location_id: int = Field(ge=1)
    description: str = Field(default="", max_length=1000)


class CreateMatchRequest(BaseModel):
    activity_id: StrictInt = 0
    match_time: datetime | None = None


class CreateReviewRequest(BaseModel):
    reviewee_id: StrictInt = 0
    score: StrictInt = 0
    comment: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str = ""


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int
