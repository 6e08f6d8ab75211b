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
"""Guarded read-modify-write updates of VM metadata."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from domain_join.app.application.compute_client import ComputeClient
from domain_join.app.application.execution_control import ExecutionControl
from domain_join.app.domain.errors import (
    ControlPlaneError,
    GuardConflictError,
    JoinCancelledError,
)
from domain_join.app.domain.models import (
    InstanceLocator,
    MetadataItem,
    MetadataItemSet,
)

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 6
BACKOFF_STEP_SECONDS = 0.01


class GuardedMetadataExchange:
    """Replaces sets of metadata keys and hands back what was there before.

    Each attempt reads one snapshot, checks the guard key against it and
    writes the modified snapshot back together with the snapshot's
    fingerprint. A fingerprint mismatch or an unavailable control plane
    restarts the whole read-check-write cycle; guard conflicts never do.

    The guard key is a best-effort lock: without a fingerprint the check
    and the write are not atomic against other metadata writers.
    """

    def __init__(
        self,
        client: ComputeClient,
        max_attempts: int = DEFAULT_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep

    def replace_keys(
        self,
        instance: InstanceLocator,
        keys_to_replace: Iterable[str],
        new_items: list[MetadataItem],
        guard_key: Optional[str] = None,
        control: Optional[ExecutionControl] = None,
        owner: Optional[str] = None,
    ) -> list[MetadataItem]:
        """Remove ``keys_to_replace``, add ``new_items``, return removed items.

        Keys of ``new_items`` are replaced as well so that the written set
        never holds duplicate keys.

        A write can be applied even though the call reported a retryable
        error. When a retry finds the guard holding ``owner``, the previous
        attempt landed and the items it removed are returned.
        """
        replaced = set(keys_to_replace) | {item.key for item in new_items}
        attempt = 0
        previous_old_items: Optional[list[MetadataItem]] = None
        while True:
            attempt += 1
            if control and control.cancelled:
                raise JoinCancelledError()

            metadata = self.client.get_metadata(instance)
            if guard_key is not None:
                guard = metadata.get(guard_key)
                if (
                    guard is not None
                    and owner is not None
                    and guard.value == owner
                    and previous_old_items is not None
                ):
                    logger.info(
                        "Guard key %s on %s already holds %s, previous write applied",
                        guard_key,
                        instance.key,
                        owner,
                    )
                    return previous_old_items
                if guard is not None:
                    logger.info(
                        "Guard key %s present on %s (value %s)",
                        guard_key,
                        instance.key,
                        guard.value,
                    )
                    raise GuardConflictError(guard_key, guard.value)

            old_items = [item for item in metadata.items if item.key in replaced]
            updated = MetadataItemSet(
                items=[item for item in metadata.items if item.key not in replaced]
                + list(new_items),
                fingerprint=metadata.fingerprint,
            )
            try:
                self.client.set_metadata(instance, updated)
            except ControlPlaneError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    logger.warning(
                        "Setting metadata of %s failed after %s attempt(s): %s",
                        instance.key,
                        attempt,
                        exc,
                    )
                    raise
                backoff = BACKOFF_STEP_SECONDS * attempt
                logger.warning(
                    "Setting metadata of %s failed (%s), retrying after %.2fs",
                    instance.key,
                    exc,
                    backoff,
                )
                previous_old_items = old_items
                self.sleep(backoff)
                continue

            logger.debug(
                "Replaced metadata keys [%s] on %s",
                ", ".join(sorted(replaced)),
                instance.key,
            )
            return old_items
