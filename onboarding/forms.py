"""Per-step onboarding form models.

Validated before any network call; a failure here never reaches the
identity service.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, ValidationInfo, field_validator, model_validator

from auth.types import DeliveryChannel


class FormModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class LoginForm(FormModel):
    """Email login: just the address."""

    email: EmailStr


class RegistrationForm(FormModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class CodeForm(FormModel):
    """
    A one-time code. Pass ``context={"code_length": n}`` to model_validate
    to require exactly n digits.
    """

    code: str = Field(..., min_length=1, pattern=r"^\d+$")

    @field_validator("code")
    @classmethod
    def check_length(cls, value: str, info: ValidationInfo) -> str:
        length = (info.context or {}).get("code_length")
        if length and len(value) != length:
            raise ValueError(f"Please enter the complete {length}-digit code")
        return value


class PhoneForm(FormModel):
    phone: str = Field(..., min_length=1, max_length=20)
    channel: DeliveryChannel = DeliveryChannel.SMS

    @field_validator("channel")
    @classmethod
    def phone_channels_only(cls, value: DeliveryChannel) -> DeliveryChannel:
        if value not in (DeliveryChannel.SMS, DeliveryChannel.WHATSAPP):
            raise ValueError("Codes can be sent by SMS or WhatsApp")
        return value


class LocationForm(FormModel):
    """State and LGA are required; the rest refines the location."""

    state_id: str = Field(..., min_length=1)
    lga_id: str = Field(..., min_length=1)
    neighborhood_id: str | None = None
    city_town: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=500)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class EstateForm(FormModel):
    estate_id: str = Field(..., min_length=1)
    estate_type: str
    is_gated: bool = False

    @model_validator(mode="after")
    def require_gated_estate(self) -> "EstateForm":
        """Only gated estates can be joined."""
        if self.estate_type != "ESTATE" or not self.is_gated:
            raise ValueError("Please select a gated estate. This location is not a gated estate.")
        return self


class ProfileForm(FormModel):
    state_of_origin_id: str = Field(..., min_length=1)
    cultural_background_id: str = Field(..., min_length=1)
    professional_category_id: str = Field(..., min_length=1)
    professional_title: str | None = Field(None, max_length=255)
    occupation: str | None = Field(None, max_length=255)


def first_error_message(error: ValidationError) -> str:
    """Human-readable message for the first failing field."""
    first = error.errors()[0]
    message = first["msg"]
    # pydantic prefixes messages raised from validators
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {message}" if location else message
