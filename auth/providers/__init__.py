"""Identity provider adapters: email code, phone code, federated sign-in."""

from auth.providers.email import EmailCodeAdapter, normalize_email, validate_code
from auth.providers.phone import PhoneCodeAdapter, normalize_phone
from auth.providers.google import (
    CredentialPromptProvider,
    GoogleCredentialPrompt,
    GoogleSignInAdapter,
)
