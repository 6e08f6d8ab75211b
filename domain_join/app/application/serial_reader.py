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
"""Correlated message reader over the serial console."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional, Type, TypeVar

from domain_join.app.application.compute_client import ComputeClient
from domain_join.app.application.execution_control import ExecutionControl
from domain_join.app.domain.errors import (
    JoinCancelledError,
    ProtocolTimeoutError,
)
from domain_join.app.domain.messages import TMessage, parse_message
from domain_join.app.domain.models import InstanceLocator

logger = logging.getLogger(__name__)

SERIAL_PORT = 4
DEFAULT_POLL_INTERVAL = 0.5

T = TypeVar("T")


def _candidates(
    buffer: str, operation_id: str, message_type: str
) -> Iterator[tuple[str, bool]]:
    """Lines that mention both the operation and the message type, oldest first.

    Each line comes with a flag telling whether it may still be incomplete:
    the last line of the buffer has no terminator yet and no closing brace.
    """
    lines = buffer.split("\n")
    last = len(lines) - 1
    for index, line in enumerate(lines):
        if operation_id in line and message_type in line:
            line = line.rstrip("\r")
            yield line, index == last and "}" not in line


class CorrelatedSerialReader:
    """Polls serial output until a line of the current operation shows up.

    Matching is plain substring containment on the operation id and the
    message type because console output interleaves unrelated text with
    protocol lines. Output is buffered for the lifetime of one await since a
    single line can be split across two reads.
    """

    def __init__(
        self,
        client: ComputeClient,
        port: int = SERIAL_PORT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.port = port
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    def await_message(
        self,
        instance: InstanceLocator,
        operation_id: str,
        message_type: str,
        control: Optional[ExecutionControl] = None,
    ) -> str:
        """Return the first raw line matching operation id and message type."""

        def match(buffer: str) -> Optional[str]:
            for line, _ in _candidates(buffer, operation_id, message_type):
                return line
            return None

        return self._poll(instance, message_type, match, control)

    def await_typed(
        self,
        instance: InstanceLocator,
        operation_id: str,
        model: Type[TMessage],
        control: Optional[ExecutionControl] = None,
    ) -> TMessage:
        """Return the first matching line parsed into ``model``.

        A line that is still being written is retried once the rest of it
        has arrived. A complete line that does not parse fails the await
        with the error raised by ``parse_message``.
        """

        def match(buffer: str) -> Optional[TMessage]:
            for line, incomplete in _candidates(
                buffer, operation_id, model.MESSAGE_TYPE
            ):
                if incomplete:
                    logger.debug(
                        "Waiting for the rest of a %s line", model.MESSAGE_TYPE
                    )
                    continue
                message = parse_message(line, model)
                if message.operation_id == operation_id:
                    return message
            return None

        return self._poll(instance, model.MESSAGE_TYPE, match, control)

    def _poll(
        self,
        instance: InstanceLocator,
        message_type: str,
        match: Callable[[str], Optional[T]],
        control: Optional[ExecutionControl],
    ) -> T:
        reader = self.client.open_serial_port(instance, self.port)
        deadline = None if self.timeout is None else self.clock() + self.timeout
        buffer = ""
        while True:
            if control and control.cancelled:
                raise JoinCancelledError(
                    f"Cancelled while waiting for {message_type} message"
                )
            if deadline is not None and self.clock() >= deadline:
                raise ProtocolTimeoutError(
                    f"No {message_type} message received from "
                    f"{instance.key} within {self.timeout}s"
                )

            logger.debug("Waiting for %s message from %s", message_type, instance.key)
            delta = reader.read()
            if not delta:
                self.sleep(self.poll_interval)
                continue

            buffer += delta
            result = match(buffer)
            if result is not None:
                return result
