"""SecretSync - Credential synchronization between HashiCorp Vault and Bitwarden."""

__version__ = "0.1.0"
__author__ = "SecretSync Team"
__description__ = "Directional username/password synchronization between HashiCorp Vault KV and a Bitwarden vault"
