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
"""Unit tests for guarded metadata exchange."""

import pytest

from domain_join.app.application.execution_control import ExecutionControl
from domain_join.app.application.metadata_exchange import GuardedMetadataExchange
from domain_join.app.domain.errors import (
    GuardConflictError,
    JoinCancelledError,
    MetadataConflictError,
    ResourceAccessDeniedError,
    ServiceUnavailableError,
)
from domain_join.app.domain.models import InstanceLocator, MetadataItem
from domain_join.app.infrastructure.in_memory_compute_client import (
    InMemoryComputeClient,
)

INSTANCE = InstanceLocator(project_id="project-1", zone="zone-1", name="instance-1")


def build(metadata=None, max_attempts=6):
    client = InMemoryComputeClient()
    client.add_instance(INSTANCE, metadata or {})
    sleeps: list[float] = []
    exchange = GuardedMetadataExchange(
        client, max_attempts=max_attempts, sleep=sleeps.append
    )
    return client, exchange, sleeps


def test_missing_keys_return_empty_list():
    client, exchange, _ = build()

    old_items = exchange.replace_keys(
        INSTANCE, ["old-1", "old-2"], [MetadataItem(key="new-1", value="x")]
    )

    assert old_items == []
    assert client.metadata(INSTANCE) == {"new-1": "x"}


def test_existing_keys_are_returned_and_replaced():
    client, exchange, _ = build({"old-1": "a", "old-2": "b", "old-3": "c"})

    old_items = exchange.replace_keys(
        INSTANCE, ["old-1", "old-2"], [MetadataItem(key="new-1", value="x")]
    )

    assert [item.key for item in old_items] == ["old-1", "old-2"]
    assert [item.value for item in old_items] == ["a", "b"]
    assert client.metadata(INSTANCE) == {"old-3": "c", "new-1": "x"}


def test_guard_key_present_fails_without_writing():
    client, exchange, _ = build({"guard": "other-operation"})

    with pytest.raises(GuardConflictError) as info:
        exchange.replace_keys(
            INSTANCE, ["old-1"], [MetadataItem(key="new-1")], guard_key="guard"
        )

    assert info.value.current_value == "other-operation"
    assert client.metadata_writes == []
    assert client.metadata(INSTANCE) == {"guard": "other-operation"}


def test_new_item_keys_never_duplicate_existing_keys():
    client, exchange, _ = build({"iapdesktop-join": "stale"})

    old_items = exchange.replace_keys(
        INSTANCE, [], [MetadataItem(key="iapdesktop-join", value="fresh")]
    )

    assert old_items == [MetadataItem(key="iapdesktop-join", value="stale")]
    _, written = client.metadata_writes[-1]
    assert written.keys() == ["iapdesktop-join"]


def test_fingerprint_conflict_is_retried_with_backoff():
    client, exchange, sleeps = build({"old-1": "a"})
    client.fail_next_set_metadata(MetadataConflictError("lost race", status_code=412))
    client.fail_next_set_metadata(ServiceUnavailableError("flaky", status_code=503))

    old_items = exchange.replace_keys(INSTANCE, ["old-1"], [])

    assert old_items == [MetadataItem(key="old-1", value="a")]
    assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]
    assert client.metadata(INSTANCE) == {}


def test_concurrent_writer_is_detected_by_fingerprint():
    client, exchange, _ = build({"old-1": "a"})
    stale = client.get_metadata(INSTANCE)
    client.set_metadata(INSTANCE, client.get_metadata(INSTANCE))

    with pytest.raises(MetadataConflictError):
        client.set_metadata(INSTANCE, stale)

    assert exchange.replace_keys(INSTANCE, ["old-1"], []) == [
        MetadataItem(key="old-1", value="a")
    ]


def test_retries_give_up_after_max_attempts():
    client, exchange, sleeps = build(max_attempts=2)
    for _ in range(2):
        client.fail_next_set_metadata(MetadataConflictError("lost race", status_code=412))

    with pytest.raises(MetadataConflictError):
        exchange.replace_keys(INSTANCE, ["old-1"], [])

    assert len(sleeps) == 1


def test_non_retryable_errors_propagate_unchanged():
    client, exchange, sleeps = build()
    error = ResourceAccessDeniedError("denied", status_code=403)
    client.fail_next_set_metadata(error)

    with pytest.raises(ResourceAccessDeniedError) as info:
        exchange.replace_keys(INSTANCE, ["old-1"], [])

    assert info.value is error
    assert sleeps == []


def test_cancelled_control_prevents_any_call():
    client, exchange, _ = build({"old-1": "a"})
    control = ExecutionControl()
    control.cancel()

    with pytest.raises(JoinCancelledError):
        exchange.replace_keys(INSTANCE, ["old-1"], [], control=control)

    assert client.metadata_writes == []


class AppliedThenUnavailableClient(InMemoryComputeClient):
    """Applies the next write but reports it as failed."""

    def __init__(self):
        super().__init__()
        self.lose_next_reply = False

    def set_metadata(self, instance, metadata):
        super().set_metadata(instance, metadata)
        if self.lose_next_reply:
            self.lose_next_reply = False
            raise ServiceUnavailableError("backend error", status_code=503)


def test_own_guard_after_lost_reply_is_not_a_conflict():
    client = AppliedThenUnavailableClient()
    client.add_instance(INSTANCE, {"old-1": "a"})
    client.lose_next_reply = True
    exchange = GuardedMetadataExchange(client, sleep=lambda _: None)

    old_items = exchange.replace_keys(
        INSTANCE,
        ["old-1"],
        [MetadataItem(key="guard", value="op-1")],
        guard_key="guard",
        owner="op-1",
    )

    assert old_items == [MetadataItem(key="old-1", value="a")]
    assert client.metadata(INSTANCE) == {"guard": "op-1"}
    assert len(client.metadata_writes) == 1


def test_guard_of_same_owner_before_any_write_is_a_conflict():
    client, exchange, _ = build({"guard": "op-1"})

    with pytest.raises(GuardConflictError):
        exchange.replace_keys(
            INSTANCE,
            [],
            [MetadataItem(key="guard", value="op-1")],
            guard_key="guard",
            owner="op-1",
        )
