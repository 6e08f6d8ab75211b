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
"""Unit tests for join state transitions."""

import pytest

from domain_join.app.domain.models import JoinEvent, JoinState
from domain_join.app.domain.state_machine import JoinStateMachine


def test_happy_path_transitions():
    sm = JoinStateMachine()
    state = JoinState.STARTED
    for event in [
        JoinEvent.INJECT_TRIGGER,
        JoinEvent.RESET,
        JoinEvent.AWAIT_HELLO,
        JoinEvent.RECEIVE_HELLO,
        JoinEvent.SUBMIT_REQUEST,
        JoinEvent.AWAIT_RESPONSE,
        JoinEvent.RESTORE,
        JoinEvent.COMPLETE,
    ]:
        state = sm.transition(state, event).next_state

    assert state == JoinState.COMPLETED


def test_guard_conflict_fails_without_restoring():
    sm = JoinStateMachine()

    assert sm.transition(JoinState.STARTED, JoinEvent.FAIL).next_state == JoinState.FAILED
    assert not sm.can_transition(JoinState.STARTED, JoinEvent.RESTORE)


@pytest.mark.parametrize(
    "state",
    [
        JoinState.TRIGGER_INJECTED,
        JoinState.INSTANCE_RESET,
        JoinState.AWAITING_HELLO,
        JoinState.KEY_EXCHANGE_READY,
        JoinState.REQUEST_SUBMITTED,
        JoinState.AWAITING_JOIN_RESPONSE,
    ],
)
def test_every_state_after_injection_can_restore(state):
    sm = JoinStateMachine()

    assert sm.transition(state, JoinEvent.RESTORE).next_state == JoinState.RESTORING


@pytest.mark.parametrize(
    ("state", "event"),
    [
        (JoinState.COMPLETED, JoinEvent.RESTORE),
        (JoinState.FAILED, JoinEvent.COMPLETE),
        (JoinState.AWAITING_HELLO, JoinEvent.COMPLETE),
        (JoinState.STARTED, JoinEvent.SUBMIT_REQUEST),
        (JoinState.TRIGGER_INJECTED, JoinEvent.FAIL),
    ],
)
def test_invalid_transitions_raise(state, event):
    sm = JoinStateMachine()

    with pytest.raises(ValueError, match="Invalid transition"):
        sm.transition(state, event)
