"""
Vault lookups for the identity runtime.

The runtime needs three things it must not hard-code: the Valkey URL,
the identity service base URL and the Google OAuth client id. They live
in KV v2 under 'mecabal/' and are read once per process through AppRole.
"""

import os
import logging
from typing import Any, Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "mecabal"

# AuthConfig fields that may be overridden from the 'identity' secret
IDENTITY_REQUIRED_FIELDS = ("api_base_url",)
IDENTITY_OPTIONAL_FIELDS = (
    "google_client_id",
    "request_timeout_seconds",
    "default_country_code",
    "authenticated_destination",
    "unauthenticated_destination",
)

# Process-wide client and whole-secret cache keyed by scoped path
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, Dict[str, Any]] = {}


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


class VaultClient:
    """AppRole-authenticated reader for secrets under 'mecabal/'."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        """
        Read VAULT_ADDR, VAULT_NAMESPACE, VAULT_ROLE_ID and VAULT_SECRET_ID
        and log in.

        Raises:
            ValueError: If the address or AppRole credentials are missing.
            PermissionError: If Vault rejects the login.
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        self.client = hvac.Client(url=self.vault_addr, namespace=self.vault_namespace or None)
        self._login(role_id, secret_id)

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info(f"Vault client ready: {self.vault_addr}")

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            response = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error(f"AppRole login failed: {e}")
            raise PermissionError(f"AppRole authentication failed: {e}")
        self.client.token = response["auth"]["client_token"]

    def read_secret(self, path: str) -> Dict[str, Any]:
        """
        Read every field of the secret at 'mecabal/{path}'.

        Raises:
            PermissionError: Path missing or access denied.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"Secret path not found: {full_path}")
            raise PermissionError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")
        return dict(response["data"]["data"])

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of 'mecabal/{path}'.

        Raises:
            PermissionError: Path missing or access denied.
            KeyError: Field not present in the secret.
        """
        secret = self.read_secret(path)
        if field not in secret:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(secret)}"
            )
        return secret[field]


def _cached(path: str) -> Dict[str, Any]:
    if path not in _secret_cache:
        _secret_cache[path] = _ensure_vault_client().read_secret(path)
    return _secret_cache[path]


def get_valkey_url() -> str:
    """Valkey connection URL from 'mecabal/valkey'."""
    secret = _cached("valkey")
    if "url" not in secret:
        raise KeyError("Field 'url' not found in secret 'mecabal/valkey'")
    return secret["url"]


def get_identity_config() -> Dict[str, Any]:
    """
    AuthConfig overrides from 'mecabal/identity'.

    api_base_url is required. Optional fields are passed through only when
    present; anything else in the secret is ignored.

    Raises:
        KeyError: If a required field is missing.
    """
    secret = _cached("identity")
    missing = [field for field in IDENTITY_REQUIRED_FIELDS if field not in secret]
    if missing:
        raise KeyError(f"Secret 'mecabal/identity' is missing: {', '.join(missing)}")

    return {
        field: secret[field]
        for field in IDENTITY_REQUIRED_FIELDS + IDENTITY_OPTIONAL_FIELDS
        if field in secret
    }
