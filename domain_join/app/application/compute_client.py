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
"""Control-plane contracts used by the join engine."""

from __future__ import annotations

from typing import Protocol

from domain_join.app.domain.models import InstanceLocator, MetadataItemSet


class SerialPortReader(Protocol):
    """Incremental reader over one serial port of one VM."""

    def read(self) -> str:
        """Return output produced since the previous call, or ''."""


class ComputeClient(Protocol):
    """Resource control-plane client (Compute Engine adapter implements this)."""

    def get_metadata(self, instance: InstanceLocator) -> MetadataItemSet:
        """Fetch the full custom metadata of a VM."""

    def set_metadata(self, instance: InstanceLocator, metadata: MetadataItemSet) -> None:
        """Replace the full custom metadata of a VM.

        Raises MetadataConflictError if ``metadata.fingerprint`` no longer
        matches the stored metadata.
        """

    def reset(self, instance: InstanceLocator) -> None:
        """Hard-reset a VM and wait for the request to complete."""

    def open_serial_port(self, instance: InstanceLocator, port: int) -> SerialPortReader:
        """Open an incremental reader for a serial port."""
