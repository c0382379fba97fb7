"""Credential acquisition for the notebook control plane.

The operator runs secretless: it authenticates with a managed identity and
refuses to start when service principal secrets or passwords are present in
its environment.
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_var} is set. The notebook operator authenticates "
    "with a managed identity only; remove credential variables from the "
    "environment and assign a managed identity with access to the workspace."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are found in the environment."""

    pass


def enforce_secretless_architecture() -> None:
    """Fail if any credential secret is present in the environment.

    Raises:
        SecretlessViolationError: If a forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={"security_event": "credential_detected", "env_var": env_var},
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))


def get_managed_identity_credential(
    client_id: str | None = None,
    *,
    workspace_name: str | None = None,
) -> ManagedIdentityCredential:
    """Return the credential the operator uses against the notebook workspace.

    Args:
        client_id: Client ID of a user-assigned identity; None selects the
            system-assigned identity.
        workspace_name: Workspace the credential is used for, logged only.
    """
    enforce_secretless_architecture()

    identity_type = "user-assigned" if client_id else "system-assigned"
    logger.info(
        f"Authenticating to notebook workspace with {identity_type} managed identity",
        extra={
            "identity_type": identity_type,
            "client_id": client_id[:8] + "..." if client_id else None,
            "workspace": workspace_name,
        },
    )
    if client_id:
        return ManagedIdentityCredential(client_id=client_id)
    return ManagedIdentityCredential()
