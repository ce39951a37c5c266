# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_valkey_url,
    get_identity_config,
)
from clients.valkey_client import ValkeyClient
from clients.identity_client import IdentityServiceClient
