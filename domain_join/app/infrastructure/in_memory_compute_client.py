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
"""Thread-safe in-memory control plane for simulation and tests."""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Callable, Optional

from domain_join.app.application.compute_client import ComputeClient, SerialPortReader
from domain_join.app.domain.errors import (
    ControlPlaneError,
    MetadataConflictError,
    ResourceNotFoundError,
)
from domain_join.app.domain.models import (
    InstanceLocator,
    MetadataItem,
    MetadataItemSet,
)

ResetListener = Callable[[InstanceLocator], None]
MetadataListener = Callable[[InstanceLocator, dict[str, Optional[str]]], None]


class InMemorySerialPortReader(SerialPortReader):
    """Returns serial output appended since the previous read."""

    def __init__(self, client: "InMemoryComputeClient", instance: InstanceLocator, port: int):
        self._client = client
        self._instance = instance
        self._port = port
        self._offset = 0

    def read(self) -> str:
        output = self._client.serial_output(self._instance, self._port)
        delta = output[self._offset :]
        self._offset = len(output)
        return delta


class InMemoryComputeClient(ComputeClient):
    """Keeps metadata, fingerprints and serial output per instance.

    Failures can be queued with ``fail_next_set_metadata`` and
    ``reset_error`` to exercise error paths.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._metadata: dict[str, list[MetadataItem]] = {}
        self._fingerprints: dict[str, int] = {}
        self._serial: dict[tuple[str, int], str] = {}
        self._reset_listeners: list[ResetListener] = []
        self._metadata_listeners: list[MetadataListener] = []
        self._set_failures: deque[ControlPlaneError] = deque()
        self.reset_error: ControlPlaneError | None = None
        self.metadata_writes: list[tuple[str, MetadataItemSet]] = []
        self.resets: list[str] = []

    def add_instance(
        self, instance: InstanceLocator, metadata: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            self._metadata[instance.key] = [
                MetadataItem(key=key, value=value)
                for key, value in (metadata or {}).items()
            ]
            self._fingerprints[instance.key] = 1

    def on_reset(self, listener: ResetListener) -> None:
        self._reset_listeners.append(listener)

    def on_metadata_changed(self, listener: MetadataListener) -> None:
        self._metadata_listeners.append(listener)

    def fail_next_set_metadata(self, error: ControlPlaneError) -> None:
        with self._lock:
            self._set_failures.append(error)

    def _require_locked(self, instance: InstanceLocator) -> list[MetadataItem]:
        items = self._metadata.get(instance.key)
        if items is None:
            raise ResourceNotFoundError(
                f"The VM instance {instance.name} does not exist "
                f"in project {instance.project_id}",
                status_code=404,
            )
        return items

    def metadata(self, instance: InstanceLocator) -> dict[str, Optional[str]]:
        """Current metadata as a plain dict."""
        with self._lock:
            return {item.key: item.value for item in self._require_locked(instance)}

    def get_metadata(self, instance: InstanceLocator) -> MetadataItemSet:
        with self._lock:
            items = self._require_locked(instance)
            return MetadataItemSet(
                items=list(items),
                fingerprint=str(self._fingerprints[instance.key]),
            )

    def set_metadata(self, instance: InstanceLocator, metadata: MetadataItemSet) -> None:
        with self._lock:
            self._require_locked(instance)
            if self._set_failures:
                raise self._set_failures.popleft()
            current = str(self._fingerprints[instance.key])
            if metadata.fingerprint is not None and metadata.fingerprint != current:
                raise MetadataConflictError(
                    f"Metadata of {instance.key} was modified concurrently",
                    status_code=412,
                )
            self._metadata[instance.key] = list(metadata.items)
            self._fingerprints[instance.key] += 1
            self.metadata_writes.append((instance.key, metadata))
            snapshot = {item.key: item.value for item in metadata.items}
        for listener in list(self._metadata_listeners):
            listener(instance, snapshot)

    def reset(self, instance: InstanceLocator) -> None:
        with self._lock:
            self._require_locked(instance)
            if self.reset_error is not None:
                raise self.reset_error
            self.resets.append(instance.key)
        for listener in list(self._reset_listeners):
            listener(instance)

    def write_serial(self, instance: InstanceLocator, text: str, port: int = 4) -> None:
        with self._lock:
            key = (instance.key, port)
            self._serial[key] = self._serial.get(key, "") + text

    def serial_output(self, instance: InstanceLocator, port: int = 4) -> str:
        with self._lock:
            return self._serial.get((instance.key, port), "")

    def open_serial_port(self, instance: InstanceLocator, port: int) -> SerialPortReader:
        with self._lock:
            self._require_locked(instance)
        return InMemorySerialPortReader(self, instance, port)
