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
"""Domain-join orchestration over metadata and serial console."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from uuid import uuid4

from domain_join.app.application.compute_client import ComputeClient
from domain_join.app.application.events import EventPublisher, OperationEvent, utc_now
from domain_join.app.application.execution_control import ExecutionControl
from domain_join.app.application.key_exchange import encrypt_secret
from domain_join.app.application.metadata_exchange import (
    DEFAULT_ATTEMPTS,
    GuardedMetadataExchange,
)
from domain_join.app.application.serial_reader import (
    DEFAULT_POLL_INTERVAL,
    SERIAL_PORT,
    CorrelatedSerialReader,
)
from domain_join.app.application.startup_script import create_startup_script
from domain_join.app.domain.errors import (
    ControlPlaneError,
    DomainJoinError,
    InstanceResetError,
    JoinCancelledError,
    JoinRejectedError,
    RestoreFailedError,
)
from domain_join.app.domain.messages import HelloMessage, JoinRequest, JoinResponse
from domain_join.app.domain.models import (
    TERMINAL_STATES,
    DomainCredential,
    InstanceLocator,
    JoinEvent,
    JoinOperation,
    JoinOutcome,
    JoinState,
    MetadataItem,
)
from domain_join.app.domain.state_machine import JoinStateMachine

logger = logging.getLogger(__name__)

JOIN_REQUEST_KEY = "iapdesktop-join"
GUARD_KEY = "iapdesktop-join-in-progress"
STARTUP_SCRIPT_PS1_KEY = "windows-startup-script-ps1"
STARTUP_SCRIPT_KEYS = (
    STARTUP_SCRIPT_PS1_KEY,
    "windows-startup-script-cmd",
    "windows-startup-script-bat",
    "windows-startup-script-url",
)
PROTOCOL_KEYS = STARTUP_SCRIPT_KEYS + (JOIN_REQUEST_KEY, GUARD_KEY)


class OperationRepository(Protocol):
    """Repository contract for operation records."""

    def save(self, operation: JoinOperation) -> None:
        """Store or update an operation."""

    def get(self, operation_id: str) -> JoinOperation | None:
        """Fetch an operation by ID."""


@dataclass(frozen=True)
class JoinEngineConfig:
    """Runtime behavior for the join engine."""

    serial_port: int = SERIAL_PORT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    await_timeout: Optional[float] = None
    metadata_attempts: int = DEFAULT_ATTEMPTS


class JoinEngine:
    """Joins a VM to a domain without a network path to the guest.

    Sequence: inject a one-time startup script and the guard key, reset the
    VM, wait for the guest's Hello, submit the encrypted JoinRequest through
    metadata, wait for the JoinResponse and finally put the original startup
    scripts back. Restoration runs on every exit path once the trigger was
    injected, and it ignores cancellation.
    """

    def __init__(
        self,
        client: ComputeClient,
        config: JoinEngineConfig | None = None,
        publisher: EventPublisher | None = None,
        repository: OperationRepository | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or JoinEngineConfig()
        self.client = client
        self.config = config
        self.publisher = publisher
        self.repository = repository
        self.state_machine = JoinStateMachine()
        self.exchange = GuardedMetadataExchange(
            client, max_attempts=config.metadata_attempts, sleep=sleep
        )
        self.reader = CorrelatedSerialReader(
            client,
            port=config.serial_port,
            poll_interval=config.poll_interval,
            timeout=config.await_timeout,
            sleep=sleep,
            clock=clock,
        )

    def _emit(
        self,
        event_type: str,
        operation: JoinOperation,
        message: str | None = None,
    ) -> None:
        if self.publisher is None:
            return
        self.publisher.publish(
            OperationEvent(
                type=event_type,
                operation_id=operation.operation_id,
                timestamp=utc_now(),
                instance=operation.instance.key,
                state=operation.state.value,
                message=message,
            )
        )

    def _save(self, operation: JoinOperation) -> None:
        if self.repository is not None:
            self.repository.save(operation)

    def _advance(self, operation: JoinOperation, event: JoinEvent) -> None:
        transition = self.state_machine.transition(operation.state, event)
        operation.state = transition.next_state
        if operation.state in TERMINAL_STATES:
            operation.completed_at = utc_now()
        self._save(operation)
        logger.debug(
            "Operation %s: %s -> %s",
            operation.operation_id,
            transition.current.value,
            transition.next_state.value,
        )
        self._emit("operation_status", operation)

    @staticmethod
    def _check_cancelled(control: ExecutionControl | None) -> None:
        if control and control.cancelled:
            raise JoinCancelledError()

    def join_domain(
        self,
        instance: InstanceLocator,
        domain: str,
        new_computer_name: str | None,
        credential: DomainCredential,
        control: ExecutionControl | None = None,
        operation_id: str | None = None,
    ) -> JoinOutcome:
        """Run one join operation and return its terminal outcome."""
        if not domain or not domain.strip():
            raise ValueError("Domain name must not be empty")
        if not credential.username or not credential.username.strip():
            raise ValueError("Username must not be empty")
        if not credential.password:
            raise ValueError("Password must not be empty")

        operation = JoinOperation(
            operation_id=operation_id or str(uuid4()),
            instance=instance,
            domain=domain.strip(),
            new_computer_name=(new_computer_name or "").strip() or None,
            state=JoinState.STARTED,
            created_at=utc_now(),
        )
        self._save(operation)
        self._emit("operation_status", operation)
        logger.info(
            "Starting domain join %s: %s -> %s",
            operation.operation_id,
            instance.key,
            operation.domain,
        )

        try:
            self._check_cancelled(control)
            original_scripts = self.exchange.replace_keys(
                instance,
                keys_to_replace=STARTUP_SCRIPT_KEYS,
                new_items=[
                    MetadataItem(
                        key=STARTUP_SCRIPT_PS1_KEY,
                        value=create_startup_script(operation.operation_id),
                    ),
                    MetadataItem(key=GUARD_KEY, value=operation.operation_id),
                ],
                guard_key=GUARD_KEY,
                control=control,
                owner=operation.operation_id,
            )
        except DomainJoinError as exc:
            return self._finish(operation, exc, None)
        except Exception as exc:
            return self._finish(operation, self._unexpected(operation, exc), None)
        self._advance(operation, JoinEvent.INJECT_TRIGGER)

        error: DomainJoinError | None = None
        try:
            self._run_protocol(operation, credential, control)
        except DomainJoinError as exc:
            error = exc
        except Exception as exc:
            error = self._unexpected(operation, exc)
        finally:
            restore_error = self._restore(operation, original_scripts)
        return self._finish(operation, error, restore_error)

    @staticmethod
    def _unexpected(operation: JoinOperation, exc: Exception) -> DomainJoinError:
        logger.exception(
            "Unexpected error in domain join %s of %s",
            operation.operation_id,
            operation.instance.key,
        )
        error = DomainJoinError(f"Unexpected error: {exc}")
        error.__cause__ = exc
        return error

    def _run_protocol(
        self,
        operation: JoinOperation,
        credential: DomainCredential,
        control: ExecutionControl | None,
    ) -> None:
        instance = operation.instance
        operation_id = operation.operation_id

        self._check_cancelled(control)
        try:
            self.client.reset(instance)
        except ControlPlaneError as exc:
            raise InstanceResetError(
                f"Resetting VM instance {instance.key} failed: {exc}",
                exc.status_code,
            ) from exc
        self._advance(operation, JoinEvent.RESET)

        self._advance(operation, JoinEvent.AWAIT_HELLO)
        hello = self.reader.await_typed(instance, operation_id, HelloMessage, control)
        self._advance(operation, JoinEvent.RECEIVE_HELLO)

        request = JoinRequest(
            operation_id=operation_id,
            message_type=JoinRequest.MESSAGE_TYPE,
            domain_name=operation.domain,
            new_computer_name=operation.new_computer_name,
            username=credential.normalized_username(operation.domain),
            encrypted_password=encrypt_secret(
                credential.password, hello.modulus, hello.exponent
            ),
        )
        self._check_cancelled(control)
        self.exchange.replace_keys(
            instance,
            keys_to_replace=[JOIN_REQUEST_KEY],
            new_items=[MetadataItem(key=JOIN_REQUEST_KEY, value=request.to_json())],
            control=control,
        )
        self._advance(operation, JoinEvent.SUBMIT_REQUEST)

        self._advance(operation, JoinEvent.AWAIT_RESPONSE)
        response = self.reader.await_typed(
            instance, operation_id, JoinResponse, control
        )
        if response.succeeded is not True:
            raise JoinRejectedError(response.error_details)

    def _restore(
        self, operation: JoinOperation, original_scripts: list[MetadataItem]
    ) -> DomainJoinError | None:
        self._advance(operation, JoinEvent.RESTORE)
        try:
            self.exchange.replace_keys(
                operation.instance,
                keys_to_replace=PROTOCOL_KEYS,
                new_items=original_scripts,
            )
        except DomainJoinError as exc:
            logger.error(
                "Restoring metadata of %s after operation %s failed: %s",
                operation.instance.key,
                operation.operation_id,
                exc,
            )
            return exc
        except Exception as exc:
            return self._unexpected(operation, exc)
        return None

    def _finish(
        self,
        operation: JoinOperation,
        error: DomainJoinError | None,
        restore_error: DomainJoinError | None,
    ) -> JoinOutcome:
        if error is None and restore_error is not None:
            error = RestoreFailedError(f"Restoring metadata failed: {restore_error}")
            error.__cause__ = restore_error
        elif error is not None and restore_error is not None:
            error.restore_error = restore_error

        if error is None:
            self._advance(operation, JoinEvent.COMPLETE)
            logger.info(
                "Domain join %s of %s completed",
                operation.operation_id,
                operation.instance.key,
            )
        else:
            operation.failure_reason = error.reason
            operation.error = str(error)
            operation.restore_error = str(restore_error) if restore_error else None
            self._advance(operation, JoinEvent.FAIL)
            logger.warning(
                "Domain join %s of %s failed (%s): %s",
                operation.operation_id,
                operation.instance.key,
                error.reason.value,
                error,
            )

        self._emit("operation_complete", operation, message=operation.error)
        return JoinOutcome(
            operation_id=operation.operation_id,
            instance=operation.instance,
            state=operation.state,
            failure_reason=operation.failure_reason,
            error=error,
            restore_error=restore_error,
        )

    def force_clear(
        self, instance: InstanceLocator, snapshot: list[MetadataItem]
    ) -> list[MetadataItem]:
        """Remove leftover protocol keys and reinstate ``snapshot``.

        Recovery for operations that were interrupted before restoration
        ran. Returns the items that were removed.
        """
        logger.info(
            "Force-clearing join metadata of %s (%s item(s) restored)",
            instance.key,
            len(snapshot),
        )
        return self.exchange.replace_keys(
            instance,
            keys_to_replace=PROTOCOL_KEYS,
            new_items=list(snapshot),
        )
