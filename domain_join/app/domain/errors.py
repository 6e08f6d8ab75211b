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
"""Typed failures raised by the domain-join engine."""

from __future__ import annotations

from typing import Optional

from .models import FailureReason


class DomainJoinError(Exception):
    """Base class for all join failures."""

    reason = FailureReason.PROTOCOL

    def __init__(self, message: str):
        super().__init__(message)
        self.restore_error: Optional[Exception] = None


class GuardConflictError(DomainJoinError):
    """The guard key is present: another join is in progress."""

    reason = FailureReason.ALREADY_IN_PROGRESS

    def __init__(self, guard_key: str, current_value: Optional[str] = None):
        super().__init__(
            f"Found metadata key '{guard_key}', indicating that a "
            "domain-join operation is already in progress"
        )
        self.guard_key = guard_key
        self.current_value = current_value


class ControlPlaneError(DomainJoinError):
    """Reading or writing metadata, or controlling the VM, failed."""

    reason = FailureReason.CONTROL_PLANE
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFoundError(ControlPlaneError):
    pass


class ResourceAccessDeniedError(ControlPlaneError):
    pass


class MetadataConflictError(ControlPlaneError):
    """Metadata changed since it was read (fingerprint mismatch)."""

    retryable = True


class ServiceUnavailableError(ControlPlaneError):
    retryable = True


class InstanceResetError(ControlPlaneError):
    reason = FailureReason.RESET_FAILED


class ProtocolError(DomainJoinError):
    """A message could not be parsed or had unexpected content."""

    reason = FailureReason.PROTOCOL


class ProtocolTimeoutError(DomainJoinError):
    """The expected message did not arrive in time."""

    reason = FailureReason.TIMEOUT


class JoinCancelledError(DomainJoinError):
    reason = FailureReason.CANCELLED

    def __init__(self, message: str = "Join operation was cancelled"):
        super().__init__(message)


class CryptographicError(DomainJoinError):
    """Key material advertised by the guest is unusable."""

    reason = FailureReason.CRYPTOGRAPHIC


class JoinRejectedError(DomainJoinError):
    """The guest reported that the domain join failed."""

    reason = FailureReason.REJECTED

    def __init__(self, error_details: Optional[str]):
        details = error_details or "no details reported by the guest"
        super().__init__(f"The domain join failed: {details}")
        self.error_details = error_details


class RestoreFailedError(DomainJoinError):
    """Restoring the original metadata failed after an otherwise successful join."""

    reason = FailureReason.CONTROL_PLANE
