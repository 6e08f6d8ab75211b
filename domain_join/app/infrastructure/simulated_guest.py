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
"""Simulated guest agent for the in-memory control plane."""

from __future__ import annotations

import base64
import logging
import os
import time

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from domain_join.app.application.join_engine import (
    JOIN_REQUEST_KEY,
    STARTUP_SCRIPT_PS1_KEY,
)
from domain_join.app.application.startup_script import operation_id_from_script
from domain_join.app.domain.messages import HelloMessage, JoinRequest, JoinResponse
from domain_join.app.domain.models import InstanceLocator
from domain_join.app.infrastructure.in_memory_compute_client import (
    InMemoryComputeClient,
)

logger = logging.getLogger(__name__)


def _to_base64(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, byteorder="big")
    return base64.b64encode(raw).decode("ascii")


class SimulatedGuest:
    """Plays the guest side of the protocol.

    On reset it picks up the operation id from the injected startup script,
    generates an ephemeral key and writes Hello to the serial port. When the
    join request shows up in metadata it decrypts the password and answers
    with a JoinResponse.
    """

    def __init__(
        self,
        client: InMemoryComputeClient,
        succeed: bool = True,
        error_details: str | None = None,
        key_size: int = 2048,
        serial_port: int = 4,
    ):
        self.client = client
        self.succeed = succeed
        self.error_details = error_details
        self.key_size = key_size
        self.serial_port = serial_port
        self.requests: list[JoinRequest] = []
        self.passwords: list[str] = []
        self._keys: dict[str, rsa.RSAPrivateKey] = {}
        client.on_reset(self.handle_reset)
        client.on_metadata_changed(self.handle_metadata)

    def _delay(self) -> None:
        delay_ms = int(os.getenv("DOMAIN_JOIN_SIMULATED_DELAY_MS", "0").strip() or "0")
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)

    def handle_reset(self, instance: InstanceLocator) -> None:
        script = self.client.metadata(instance).get(STARTUP_SCRIPT_PS1_KEY)
        operation_id = operation_id_from_script(script)
        self.client.write_serial(
            instance, "Windows boot complete\r\n", port=self.serial_port
        )
        if operation_id is None:
            return

        self._delay()
        key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        self._keys[operation_id] = key
        numbers = key.public_key().public_numbers()
        hello = HelloMessage(
            operation_id=operation_id,
            message_type=HelloMessage.MESSAGE_TYPE,
            modulus=_to_base64(numbers.n),
            exponent=_to_base64(numbers.e),
        )
        self.client.write_serial(instance, hello.to_json() + "\n", port=self.serial_port)

    def handle_metadata(
        self, instance: InstanceLocator, metadata: dict[str, str | None]
    ) -> None:
        raw = metadata.get(JOIN_REQUEST_KEY)
        if not raw:
            return
        request = JoinRequest.model_validate_json(raw)
        key = self._keys.pop(request.operation_id, None)
        if key is None:
            return

        self._delay()
        password = key.decrypt(
            base64.b64decode(request.encrypted_password),
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA256()),
                algorithm=hashes.SHA256(),
                label=None,
            ),
        ).decode("utf-8")
        self.requests.append(request)
        self.passwords.append(password)
        logger.debug("Simulated guest received join request %s", request.operation_id)

        response = JoinResponse(
            operation_id=request.operation_id,
            message_type=JoinResponse.MESSAGE_TYPE,
            succeeded=self.succeed,
            error_details=None if self.succeed else self.error_details,
        )
        self.client.write_serial(
            instance, response.to_json() + "\n", port=self.serial_port
        )
