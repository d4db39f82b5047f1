import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

EventStatus = Literal['draft', 'pending', 'published']
CalendarProvider = Literal['google', 'microsoft', 'apple']


class CamelModel(BaseModel):
    """Accepts the frontend's camelCase keys as well as snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_null(value):
    # Omit a field to leave it unchanged; null would blank a required column
    if value is None:
        raise ValueError("may not be null")
    return value


class EventCreate(CamelModel):
    title: str = Field(min_length=1)
    venue: str = Field(min_length=1)
    date: dt.date
    venue_name: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    tickets_url: Optional[str] = None
    add_to_calendar: bool = False
    publish_to_website: bool = False
    send_notification: bool = False


class EventUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    venue: Optional[str] = Field(default=None, min_length=1)
    date: Optional[dt.date] = None
    venue_name: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    tickets_url: Optional[str] = None
    add_to_calendar: Optional[bool] = None
    publish_to_website: Optional[bool] = None
    send_notification: Optional[bool] = None
    status: Optional[EventStatus] = None

    @field_validator(
        'title', 'venue', 'date', 'venue_name', 'city', 'add_to_calendar',
        'publish_to_website', 'send_notification', 'status',
    )
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None

    @model_validator(mode='after')
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class GoogleSignInRequest(CamelModel):
    id_token: str
    access_token: Optional[str] = None


class CalendarIntegrationCreate(CamelModel):
    provider: CalendarProvider
    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_at: Optional[dt.datetime] = None
    calendar_id: Optional[str] = None
    is_active: bool = True


class CalendarIntegrationUpdate(CamelModel):
    access_token: Optional[str] = Field(default=None, min_length=1)
    refresh_token: Optional[str] = None
    expires_at: Optional[dt.datetime] = None
    calendar_id: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('access_token', 'is_active')
    @classmethod
    def reject_null(cls, value):
        return _not_null(value)


class SavedVenueCreate(CamelModel):
    venue_name: str = Field(min_length=1)
    venue_address: Optional[str] = None
    facebook_id: Optional[str] = None
    facebook_url: Optional[str] = None
    profile_picture_url: Optional[str] = None
    website_url: Optional[str] = None
    google_maps_url: Optional[str] = None
