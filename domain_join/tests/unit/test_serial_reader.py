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
"""Unit tests for the correlated serial reader."""

import pytest

from domain_join.app.application.execution_control import ExecutionControl
from domain_join.app.application.serial_reader import CorrelatedSerialReader
from domain_join.app.domain.errors import (
    CryptographicError,
    JoinCancelledError,
    ProtocolError,
    ProtocolTimeoutError,
)
from domain_join.app.domain.messages import HelloMessage, JoinResponse
from domain_join.app.domain.models import InstanceLocator

INSTANCE = InstanceLocator(project_id="project-1", zone="zone-1", name="instance-1")


class ScriptedSerialPort:
    """Returns one scripted chunk per read, then empty output."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.reads = 0
        self.opened = []

    def open_serial_port(self, instance, port):
        self.opened.append((instance, port))
        return self

    def read(self):
        self.reads += 1
        if self.chunks:
            return self.chunks.pop(0)
        return ""


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def hello_line(operation_id):
    return (
        f'{{"OperationId":"{operation_id}","MessageType":"hello",'
        '"Modulus":"AQAB","Exponent":"AQAB"}\r\n'
    )


def test_empty_reads_keep_polling():
    port = ScriptedSerialPort(["", "", "noise\r\n", hello_line("op-1")])
    clock = FakeClock()
    reader = CorrelatedSerialReader(port, poll_interval=0.5, sleep=clock.sleep)

    line = reader.await_message(INSTANCE, "op-1", "hello")

    assert '"OperationId":"op-1"' in line
    assert not line.endswith("\r")
    assert port.reads == 4
    assert clock.now == pytest.approx(1.0)
    assert port.opened == [(INSTANCE, 4)]


def test_lines_of_other_operations_are_ignored():
    port = ScriptedSerialPort([hello_line("op-old"), hello_line("op-new")])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    message = reader.await_typed(INSTANCE, "op-new", HelloMessage)

    assert message.operation_id == "op-new"


def test_other_message_types_are_ignored():
    response = '{"OperationId":"op-1","MessageType":"join-response","Succeeded":true}\n'
    port = ScriptedSerialPort([hello_line("op-1"), response])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    message = reader.await_typed(INSTANCE, "op-1", JoinResponse)

    assert message.succeeded is True


def test_line_split_across_reads_is_reassembled():
    line = hello_line("op-1")
    port = ScriptedSerialPort(["boot\r\n" + line[:30], line[30:]])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    message = reader.await_typed(INSTANCE, "op-1", HelloMessage)

    assert message.modulus == "AQAB"
    assert port.reads == 2


def test_first_match_wins():
    first = (
        '{"OperationId":"op-1","MessageType":"join-response",'
        '"Succeeded":false,"ErrorDetails":"first"}\n'
    )
    second = '{"OperationId":"op-1","MessageType":"join-response","Succeeded":true}\n'
    port = ScriptedSerialPort([first + second])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    message = reader.await_typed(INSTANCE, "op-1", JoinResponse)

    assert message.error_details == "first"


def test_cancellation_interrupts_polling():
    port = ScriptedSerialPort([])
    control = ExecutionControl()
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            control.cancel()

    reader = CorrelatedSerialReader(port, sleep=sleep)

    with pytest.raises(JoinCancelledError):
        reader.await_typed(INSTANCE, "op-1", HelloMessage, control)

    assert len(sleeps) == 3


def test_timeout_raises_protocol_timeout():
    port = ScriptedSerialPort(["noise\n"])
    clock = FakeClock()
    reader = CorrelatedSerialReader(
        port, poll_interval=1.0, timeout=5.0, sleep=clock.sleep, clock=clock
    )

    with pytest.raises(ProtocolTimeoutError):
        reader.await_typed(INSTANCE, "op-1", HelloMessage)

    assert clock.now == pytest.approx(5.0)


def test_partial_line_is_retried_until_complete():
    line = hello_line("op-1")
    port = ScriptedSerialPort([line[:50], "", line[50:]])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    message = reader.await_typed(INSTANCE, "op-1", HelloMessage)

    assert message.exponent == "AQAB"
    assert port.reads == 3


def test_malformed_hello_fails_instead_of_polling_forever():
    line = '{"OperationId":"op-1","MessageType":"hello","Modulus":null,"Exponent":"AQAB"}\n'
    port = ScriptedSerialPort([line])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    with pytest.raises(CryptographicError):
        reader.await_typed(INSTANCE, "op-1", HelloMessage)

    assert port.reads == 1


def test_complete_garbled_line_is_a_protocol_error():
    port = ScriptedSerialPort(['{"OperationId":"op-1","MessageType":"hello",}\n'])
    reader = CorrelatedSerialReader(port, sleep=lambda _: None)

    with pytest.raises(ProtocolError):
        reader.await_typed(INSTANCE, "op-1", HelloMessage)
