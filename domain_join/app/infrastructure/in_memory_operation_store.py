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
"""In-memory repository for join operations."""

from __future__ import annotations

from threading import Lock

from domain_join.app.domain.models import JoinOperation


class InMemoryOperationStore:
    """Thread-safe in-memory operation repository."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._operations: dict[str, JoinOperation] = {}

    def save(self, operation: JoinOperation) -> None:
        with self._lock:
            self._operations[operation.operation_id] = operation

    def get(self, operation_id: str) -> JoinOperation | None:
        with self._lock:
            return self._operations.get(operation_id)

    def list(self) -> list[JoinOperation]:
        with self._lock:
            return list(self._operations.values())
