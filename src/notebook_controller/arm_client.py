"""Azure Resource Manager implementation of the notebook control plane.

Notebook instances are Azure Machine Learning compute instances addressed by
ARM resource ID. Create, describe, update and delete go through the generic
resource API of ResourceManagementClient; start and stop are ARM actions
sent through the same authenticated pipeline.

All calls return after the initial request (no LRO polling here). Progress
is observed by the StatusPoller through describe().

SECURITY: The client is always built from a managed identity credential.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.core.rest import HttpRequest
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import (
    GenericResource,
    Identity,
    IdentityUserAssignedIdentitiesValue,
)

from .client import NotebookNotFoundError, RemoteError, ResourceClient
from .config import DEFAULT_ARM_API_VERSION, Config
from .models import LifecycleStatus, NotebookSpec, ObservedState
from .security import get_managed_identity_credential

logger = logging.getLogger(__name__)

COMPUTE_TYPE = "ComputeInstance"
RESOURCE_ID_TEMPLATE = (
    "/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
    "/providers/Microsoft.MachineLearningServices/workspaces/{workspace}/computes/{name}"
)

# ARM provisioning states that override the compute power state
PROVISIONING_STATE_MAP: dict[str, LifecycleStatus] = {
    "Creating": LifecycleStatus.PENDING,
    "Updating": LifecycleStatus.UPDATING,
    "Deleting": LifecycleStatus.DELETING,
    "Failed": LifecycleStatus.FAILED,
    "Canceled": LifecycleStatus.FAILED,
}

# Compute instance power states
INSTANCE_STATE_MAP: dict[str, LifecycleStatus] = {
    "Creating": LifecycleStatus.PENDING,
    "Starting": LifecycleStatus.PENDING,
    "Restarting": LifecycleStatus.PENDING,
    "SettingUp": LifecycleStatus.PENDING,
    "UserSettingUp": LifecycleStatus.PENDING,
    "Running": LifecycleStatus.IN_SERVICE,
    "JobRunning": LifecycleStatus.IN_SERVICE,
    "Stopping": LifecycleStatus.STOPPING,
    "Stopped": LifecycleStatus.STOPPED,
    "Deleting": LifecycleStatus.DELETING,
    "CreateFailed": LifecycleStatus.FAILED,
    "SetupFailed": LifecycleStatus.FAILED,
    "UserSetupFailed": LifecycleStatus.FAILED,
    "Unusable": LifecycleStatus.FAILED,
}


def parse_status(provisioning_state: str | None, instance_state: str | None) -> LifecycleStatus:
    """Fold ARM provisioning state and compute power state into one status.

    Unknown values are treated as still converging.
    """
    if provisioning_state in PROVISIONING_STATE_MAP:
        return PROVISIONING_STATE_MAP[provisioning_state]
    if instance_state in INSTANCE_STATE_MAP:
        return INSTANCE_STATE_MAP[instance_state]

    logger.warning(
        "Unrecognized notebook instance state, treating as pending",
        extra={"provisioning_state": provisioning_state, "instance_state": instance_state},
    )
    return LifecycleStatus.PENDING


def build_compute_properties(spec: NotebookSpec) -> dict[str, Any]:
    """Translate a desired spec into the compute resource properties."""
    instance: dict[str, Any] = {"vmSize": spec.instance_type}
    if spec.subnet_id:
        instance["subnet"] = {"id": spec.subnet_id}
    if spec.security_groups:
        instance["securityGroupIds"] = sorted(spec.security_groups)
    if spec.kms_key_id:
        instance["keyVaultKeyId"] = spec.kms_key_id

    return {"computeType": COMPUTE_TYPE, "properties": instance}


def build_identity(role_arn: str) -> Identity:
    return Identity(
        type="UserAssigned",
        user_assigned_identities={role_arn: IdentityUserAssignedIdentitiesValue()},
    )


class ArmNotebookClient(ResourceClient):
    """Notebook control plane over the ARM generic resource API."""

    def __init__(
        self,
        resource_client: ResourceManagementClient,
        *,
        subscription_id: str,
        resource_group_name: str,
        workspace_name: str,
        location: str,
        api_version: str = DEFAULT_ARM_API_VERSION,
    ) -> None:
        """Initialize the client.

        Args:
            resource_client: Authenticated ARM client, shared across instances.
            subscription_id: Subscription holding the workspace.
            resource_group_name: Resource group of the workspace.
            workspace_name: Workspace that owns the notebook instances.
            location: Region for new instances.
            api_version: API version of the compute resources.
        """
        self._client = resource_client
        self._subscription_id = subscription_id
        self._resource_group = resource_group_name
        self._workspace = workspace_name
        self._location = location
        self._api_version = api_version

    @classmethod
    def from_config(cls, config: Config) -> ArmNotebookClient:
        """Build a client authenticated with the configured managed identity."""
        credential = get_managed_identity_credential(
            config.client_id, workspace_name=config.workspace_name
        )
        resource_client = ResourceManagementClient(
            credential=credential,
            subscription_id=config.subscription_id,
        )
        return cls(
            resource_client,
            subscription_id=config.subscription_id,
            resource_group_name=config.resource_group_name,
            workspace_name=config.workspace_name,
            location=config.location,
            api_version=config.api_version,
        )

    def resource_id(self, name: str) -> str:
        return RESOURCE_ID_TEMPLATE.format(
            subscription_id=self._subscription_id,
            resource_group=self._resource_group,
            workspace=self._workspace,
            name=name,
        )

    def create(self, spec: NotebookSpec) -> str:
        resource = GenericResource(
            location=self._location,
            tags=dict(spec.tags),
            identity=build_identity(spec.role_arn),
            properties=build_compute_properties(spec),
        )
        logger.debug(
            f"Notebook instance create config: {resource.properties}",
            extra={"notebook": spec.name},
        )
        with self._translate_errors("create", spec.name):
            self._client.resources.begin_create_or_update_by_id(
                self.resource_id(spec.name),
                self._api_version,
                resource,
                polling=False,
            )
        logger.info(f"Notebook instance ID: {spec.name}", extra={"notebook": spec.name})
        return spec.name

    def describe(self, name: str) -> ObservedState:
        with self._translate_errors("describe", name):
            resource = self._client.resources.get_by_id(self.resource_id(name), self._api_version)
        return self._to_observed_state(name, resource)

    def update(self, name: str, changes: dict[str, Any]) -> None:
        resource = GenericResource()
        if "instance_type" in changes:
            resource.properties = {
                "computeType": COMPUTE_TYPE,
                "properties": {"vmSize": changes["instance_type"]},
            }
        if "role_arn" in changes:
            resource.identity = build_identity(changes["role_arn"])

        with self._translate_errors("update", name):
            self._client.resources.begin_update_by_id(
                self.resource_id(name),
                self._api_version,
                resource,
                polling=False,
            )

    def start(self, name: str) -> None:
        self._post_action(name, "start")

    def stop(self, name: str) -> None:
        self._post_action(name, "stop")

    def delete(self, name: str) -> None:
        with self._translate_errors("delete", name):
            self._client.resources.begin_delete_by_id(
                self.resource_id(name),
                self._api_version,
                polling=False,
            )

    def replace_tags(self, name: str, tags: Mapping[str, str]) -> None:
        """Replace the full tag set of an instance (tags are never merged)."""
        with self._translate_errors("tag", name):
            self._client.resources.begin_update_by_id(
                self.resource_id(name),
                self._api_version,
                GenericResource(tags=dict(tags)),
                polling=False,
            ).result()

    def _post_action(self, name: str, action: str) -> None:
        request = HttpRequest(
            "POST",
            f"{self.resource_id(name)}/{action}",
            params={"api-version": self._api_version},
        )
        with self._translate_errors(action, name):
            response = self._client._send_request(request)
            response.raise_for_status()

    def _to_observed_state(self, name: str, resource: GenericResource) -> ObservedState:
        properties: dict[str, Any] = resource.properties or {}
        instance: dict[str, Any] = properties.get("properties") or {}

        role_arn = None
        if resource.identity and resource.identity.user_assigned_identities:
            role_arn = next(iter(resource.identity.user_assigned_identities))

        subnet = instance.get("subnet") or {}
        return ObservedState(
            name=resource.name or name,
            arn=resource.id,
            status=parse_status(properties.get("provisioningState"), instance.get("state")),
            role_arn=role_arn,
            instance_type=instance.get("vmSize"),
            subnet_id=subnet.get("id"),
            security_groups=frozenset(instance.get("securityGroupIds") or ()),
            kms_key_id=instance.get("keyVaultKeyId"),
            tags=resource.tags or {},
        )

    @contextmanager
    def _translate_errors(self, operation: str, name: str) -> Iterator[None]:
        """Map Azure SDK errors onto not-found versus remote failures."""
        try:
            yield
        except ResourceNotFoundError as e:
            raise NotebookNotFoundError(name) from e
        except HttpResponseError as e:
            if e.status_code == 404:
                raise NotebookNotFoundError(name) from e
            error_code = e.error.code if e.error else None
            logger.error(
                f"Azure API error during notebook instance {operation}: {e.message}",
                extra={"notebook": name, "status_code": e.status_code, "error_code": error_code},
            )
            raise RemoteError(
                f"Error during notebook instance {operation} ({e.status_code}): {e.message}",
                status_code=e.status_code,
                error_code=error_code,
            ) from e
        except AzureError as e:
            logger.error(
                f"Azure error during notebook instance {operation}: {e}",
                extra={"notebook": name, "error_type": type(e).__name__},
            )
            raise RemoteError(f"Error during notebook instance {operation}: {e}") from e
