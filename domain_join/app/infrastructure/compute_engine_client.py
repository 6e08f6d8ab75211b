# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""Compute Engine REST adapter for the join engine."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

import httpx

from domain_join.app.application.compute_client import ComputeClient, SerialPortReader
from domain_join.app.domain.errors import (
    ControlPlaneError,
    MetadataConflictError,
    ResourceAccessDeniedError,
    ResourceNotFoundError,
    ServiceUnavailableError,
)
from domain_join.app.domain.models import (
    InstanceLocator,
    MetadataItem,
    MetadataItemSet,
)

logger = logging.getLogger(__name__)

COMPUTE_API_URL = "https://compute.googleapis.com/compute/v1"
ACCESS_TOKEN_ENV = "DOMAIN_JOIN_ACCESS_TOKEN"

# Limits
REQUEST_TIMEOUT = 30.0
OPERATION_TIMEOUT = 300.0


def _instance_path(instance: InstanceLocator) -> str:
    return (
        f"/projects/{instance.project_id}/zones/{instance.zone}"
        f"/instances/{instance.name}"
    )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


def raise_for_status(
    response: httpx.Response, instance: InstanceLocator, action: str
) -> None:
    """Translate an API error response into a ControlPlaneError."""
    status = response.status_code
    if status < 400:
        return
    detail = _error_message(response)
    if status == 403:
        raise ResourceAccessDeniedError(
            f"You don't have sufficient permissions to {action} "
            f"VM instance {instance.name} in project {instance.project_id}",
            status_code=status,
        )
    if status == 404:
        raise ResourceNotFoundError(
            f"The VM instance {instance.name} does not exist "
            f"in project {instance.project_id}",
            status_code=status,
        )
    if status == 412:
        raise MetadataConflictError(
            f"Metadata of {instance.key} was modified concurrently: {detail}",
            status_code=status,
        )
    if status == 503:
        raise ServiceUnavailableError(
            f"Compute Engine API unavailable: {detail}", status_code=status
        )
    raise ControlPlaneError(
        f"Failed to {action} VM instance {instance.key}: {detail}",
        status_code=status,
    )


class ComputeEngineSerialPortReader(SerialPortReader):
    """Reads serial port output incrementally using the API's start offset."""

    def __init__(self, client: "ComputeEngineClient", instance: InstanceLocator, port: int):
        self._client = client
        self._instance = instance
        self._port = port
        self._next_start = 0

    def read(self) -> str:
        payload = self._client.request(
            "GET",
            f"{_instance_path(self._instance)}/serialPort",
            self._instance,
            "read the serial port of",
            params={"port": self._port, "start": self._next_start},
        )
        self._next_start = int(payload.get("next", self._next_start))
        return str(payload.get("contents") or "")


class ComputeEngineClient(ComputeClient):
    """Instance metadata, reset and serial port over the Compute Engine API."""

    def __init__(
        self,
        token_provider: Callable[[], str] | None = None,
        http_client: httpx.Client | None = None,
        base_url: str = COMPUTE_API_URL,
        operation_timeout: float = OPERATION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token_provider = token_provider
        self.http = http_client or httpx.Client(timeout=REQUEST_TIMEOUT)
        self.base_url = base_url.rstrip("/")
        self.operation_timeout = operation_timeout
        self.clock = clock

    def _headers(self) -> dict[str, str]:
        if self.token_provider is not None:
            try:
                token = self.token_provider()
            except Exception as exc:
                raise ControlPlaneError(
                    f"Obtaining an access token failed: {exc}"
                ) from exc
        else:
            token = os.getenv(ACCESS_TOKEN_ENV, "").strip()
        if not token:
            raise ControlPlaneError(
                f"No access token available (set {ACCESS_TOKEN_ENV})"
            )
        return {"Authorization": f"Bearer {token}"}

    def request(
        self,
        method: str,
        path: str,
        instance: InstanceLocator,
        action: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Issue one API call and return its JSON body."""
        try:
            response = self.http.request(
                method, self.base_url + path, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            raise ControlPlaneError(
                f"Failed to {action} VM instance {instance.key}: {exc}"
            ) from exc
        raise_for_status(response, instance, action)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ControlPlaneError(
                f"Failed to {action} VM instance {instance.key}: "
                "response is not valid JSON",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise ControlPlaneError(
                f"Failed to {action} VM instance {instance.key}: "
                "unexpected response body",
                status_code=response.status_code,
            )
        return payload

    def _await_operation(
        self, instance: InstanceLocator, operation: dict[str, Any], action: str
    ) -> None:
        deadline = self.clock() + self.operation_timeout
        while operation.get("status") != "DONE":
            if not operation.get("name"):
                raise ControlPlaneError(
                    f"Failed to {action} VM instance {instance.key}: "
                    "response is not an operation"
                )
            if self.clock() >= deadline:
                raise ControlPlaneError(
                    f"Timed out waiting to {action} VM instance {instance.key}"
                )
            operation = self.request(
                "POST",
                f"/projects/{instance.project_id}/zones/{instance.zone}"
                f"/operations/{operation['name']}/wait",
                instance,
                action,
            )
        errors = (operation.get("error") or {}).get("errors") or []
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise ControlPlaneError(
                f"Failed to {action} VM instance {instance.key}: {messages}"
            )

    def get_metadata(self, instance: InstanceLocator) -> MetadataItemSet:
        payload = self.request(
            "GET", _instance_path(instance), instance, "read the metadata of"
        )
        metadata = payload.get("metadata") or {}
        return MetadataItemSet(
            items=[
                MetadataItem(key=item["key"], value=item.get("value"))
                for item in metadata.get("items") or []
            ],
            fingerprint=metadata.get("fingerprint"),
        )

    def set_metadata(self, instance: InstanceLocator, metadata: MetadataItemSet) -> None:
        body: dict[str, Any] = {
            "items": [{"key": item.key, "value": item.value} for item in metadata.items]
        }
        if metadata.fingerprint is not None:
            body["fingerprint"] = metadata.fingerprint
        operation = self.request(
            "POST",
            f"{_instance_path(instance)}/setMetadata",
            instance,
            "modify the metadata of",
            json=body,
        )
        self._await_operation(instance, operation, "modify the metadata of")

    def reset(self, instance: InstanceLocator) -> None:
        logger.info("Resetting VM instance %s", instance.key)
        operation = self.request(
            "POST", f"{_instance_path(instance)}/reset", instance, "reset"
        )
        self._await_operation(instance, operation, "reset")

    def open_serial_port(self, instance: InstanceLocator, port: int) -> SerialPortReader:
        return ComputeEngineSerialPortReader(self, instance, port)

    def close(self) -> None:
        self.http.close()
