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
"""Domain models for the out-of-band domain-join engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class JoinState(str, Enum):
    """Lifecycle states for one join operation."""

    STARTED = "started"
    TRIGGER_INJECTED = "trigger_injected"
    INSTANCE_RESET = "instance_reset"
    AWAITING_HELLO = "awaiting_hello"
    KEY_EXCHANGE_READY = "key_exchange_ready"
    REQUEST_SUBMITTED = "request_submitted"
    AWAITING_JOIN_RESPONSE = "awaiting_join_response"
    RESTORING = "restoring"
    COMPLETED = "completed"
    FAILED = "failed"


class JoinEvent(str, Enum):
    """Events that trigger state transitions."""

    INJECT_TRIGGER = "inject_trigger"
    RESET = "reset"
    AWAIT_HELLO = "await_hello"
    RECEIVE_HELLO = "receive_hello"
    SUBMIT_REQUEST = "submit_request"
    AWAIT_RESPONSE = "await_response"
    RESTORE = "restore"
    COMPLETE = "complete"
    FAIL = "fail"


class FailureReason(str, Enum):
    """Stage-level classification of a failed operation."""

    ALREADY_IN_PROGRESS = "already_in_progress"
    CONTROL_PLANE = "control_plane"
    RESET_FAILED = "reset_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CRYPTOGRAPHIC = "cryptographic"
    REJECTED = "rejected"
    PROTOCOL = "protocol"


TERMINAL_STATES = frozenset({JoinState.COMPLETED, JoinState.FAILED})


@dataclass(frozen=True)
class JoinTransition:
    """Single transition entry."""

    current: JoinState
    event: JoinEvent
    next_state: JoinState


@dataclass(frozen=True)
class InstanceLocator:
    """Compute Engine VM instance."""

    project_id: str
    zone: str
    name: str

    @property
    def key(self) -> str:
        """Stable key for maps and logs."""
        return f"{self.project_id}/{self.zone}/{self.name}"


@dataclass(frozen=True)
class MetadataItem:
    """One custom metadata entry."""

    key: str
    value: Optional[str] = None


@dataclass
class MetadataItemSet:
    """Snapshot of a VM's custom metadata.

    ``fingerprint`` is the concurrency token returned with the snapshot;
    writes computed from this snapshot must present it back.
    """

    items: list[MetadataItem] = field(default_factory=list)
    fingerprint: Optional[str] = None

    def get(self, key: str) -> Optional[MetadataItem]:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def keys(self) -> list[str]:
        return [item.key for item in self.items]

    def as_dict(self) -> dict[str, Optional[str]]:
        return {item.key: item.value for item in self.items}


@dataclass(frozen=True)
class DomainCredential:
    """Domain user allowed to join computers to the domain."""

    username: str
    password: str = field(repr=False)

    def normalized_username(self, domain: Optional[str] = None) -> str:
        """User name in a form the guest can pass to Add-Computer.

        ``DOMAIN\\user`` and ``user@domain`` are kept (blanks trimmed). A bare
        user name is qualified as ``user@domain`` when ``domain`` is given.
        """
        username = self.username.strip()
        if "\\" in username:
            netbios, _, user = username.partition("\\")
            return f"{netbios.strip()}\\{user.strip()}"
        if "@" in username:
            user, _, upn_suffix = username.rpartition("@")
            return f"{user.strip()}@{upn_suffix.strip()}"
        if domain and domain.strip():
            return f"{username}@{domain.strip()}"
        return username


@dataclass
class JoinOperation:
    """Join attempt tracked in the operation repository."""

    operation_id: str
    instance: InstanceLocator
    domain: str
    state: JoinState
    created_at: str
    new_computer_name: Optional[str] = None
    completed_at: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    error: Optional[str] = None
    restore_error: Optional[str] = None


@dataclass
class JoinOutcome:
    """Terminal result of a join operation."""

    operation_id: str
    instance: InstanceLocator
    state: JoinState
    failure_reason: Optional[FailureReason] = None
    error: Optional[Exception] = None
    restore_error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.state == JoinState.COMPLETED
