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
"""Finite state machine for the domain-join protocol."""

from .models import JoinEvent, JoinState, JoinTransition


class JoinStateMachine:
    """Validates and executes join state transitions."""

    _transitions = {
        (JoinState.STARTED, JoinEvent.INJECT_TRIGGER): JoinState.TRIGGER_INJECTED,
        (JoinState.STARTED, JoinEvent.FAIL): JoinState.FAILED,
        (JoinState.TRIGGER_INJECTED, JoinEvent.RESET): JoinState.INSTANCE_RESET,
        (JoinState.TRIGGER_INJECTED, JoinEvent.RESTORE): JoinState.RESTORING,
        (JoinState.INSTANCE_RESET, JoinEvent.AWAIT_HELLO): JoinState.AWAITING_HELLO,
        (JoinState.INSTANCE_RESET, JoinEvent.RESTORE): JoinState.RESTORING,
        (
            JoinState.AWAITING_HELLO,
            JoinEvent.RECEIVE_HELLO,
        ): JoinState.KEY_EXCHANGE_READY,
        (JoinState.AWAITING_HELLO, JoinEvent.RESTORE): JoinState.RESTORING,
        (
            JoinState.KEY_EXCHANGE_READY,
            JoinEvent.SUBMIT_REQUEST,
        ): JoinState.REQUEST_SUBMITTED,
        (JoinState.KEY_EXCHANGE_READY, JoinEvent.RESTORE): JoinState.RESTORING,
        (
            JoinState.REQUEST_SUBMITTED,
            JoinEvent.AWAIT_RESPONSE,
        ): JoinState.AWAITING_JOIN_RESPONSE,
        (JoinState.REQUEST_SUBMITTED, JoinEvent.RESTORE): JoinState.RESTORING,
        (JoinState.AWAITING_JOIN_RESPONSE, JoinEvent.RESTORE): JoinState.RESTORING,
        (JoinState.RESTORING, JoinEvent.COMPLETE): JoinState.COMPLETED,
        (JoinState.RESTORING, JoinEvent.FAIL): JoinState.FAILED,
    }

    def can_transition(self, state: JoinState, event: JoinEvent) -> bool:
        """Return True if transition is valid for the current state."""
        return (state, event) in self._transitions

    def transition(self, state: JoinState, event: JoinEvent) -> JoinTransition:
        """Apply a transition or raise ValueError for invalid transitions."""
        key = (state, event)
        if key not in self._transitions:
            raise ValueError(
                f"Invalid transition: state={state.value}, event={event.value}"
            )
        return JoinTransition(
            current=state, event=event, next_state=self._transitions[key]
        )
