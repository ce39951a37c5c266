"""Identity and session configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Identity and session configuration.

    Durations are in their natural units (seconds for short cool-downs,
    hours for storage lifetimes) to make configuration intuitive.
    """

    # Identity service
    api_base_url: str = Field(
        default="http://localhost:3001/api",
        description="Base URL of the identity/verification service",
    )
    request_timeout_seconds: int = Field(
        default=10,
        description="Per-request HTTP timeout",
        ge=1,
        le=60,
    )

    # Phone numbers
    default_country_code: str = Field(
        default="234",
        description="Canonical country calling code, digits only",
        pattern=r"^\d{1,3}$",
    )
    national_number_length: int = Field(
        default=10,
        description="Digits in a national number after trunk/country prefixes are stripped",
        ge=6,
        le=12,
    )

    # One-time codes
    otp_code_length: int = Field(
        default=4,
        description="Digits in a one-time verification code",
        ge=4,
        le=8,
    )
    resend_cooldown_seconds: int = Field(
        default=30,
        description="Minimum wait before a code may be resent",
        ge=0,
        le=300,
    )

    # Onboarding draft
    draft_ttl_hours: int = Field(
        default=24,
        description="Lifetime of an abandoned onboarding draft",
        ge=1,
        le=168,
    )

    # Federated sign-in
    google_client_id: str | None = Field(
        default=None,
        description="OAuth client id for Google Identity Services",
    )
    google_prompt_timeout_seconds: int = Field(
        default=120,
        description="How long to wait for the one-shot credential callback",
        ge=5,
        le=600,
    )
    require_verified_phone_for_google: bool = Field(
        default=True,
        description="Route returning Google users without a verified phone through phone verification",
    )

    # Navigation
    authenticated_destination: str = Field(
        default="/dashboard",
        description="Where a settled session lands",
    )
    unauthenticated_destination: str = Field(
        default="/onboarding",
        description="Where route guards send anonymous visitors",
    )
