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
"""Background run coordinator."""

from threading import Lock, Thread
from typing import Callable, Any


class RunCoordinator:
    """Runs at most one background join thread per instance key.

    The guard key only serializes joins across processes on a best-effort
    basis; this keeps a single process from racing itself on one VM.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._threads: dict[str, Thread] = {}

    def _cleanup_dead_locked(self) -> None:
        dead = [key for key, thread in self._threads.items() if not thread.is_alive()]
        for key in dead:
            self._threads.pop(key, None)

    def is_running(self, instance_key: str) -> bool:
        with self._lock:
            self._cleanup_dead_locked()
            thread = self._threads.get(instance_key)
            return bool(thread and thread.is_alive())

    def start(self, instance_key: str, target: Callable[[], Any]) -> bool:
        """Start a background join unless one is running for the instance."""
        with self._lock:
            self._cleanup_dead_locked()
            thread = self._threads.get(instance_key)
            if thread and thread.is_alive():
                return False
            new_thread = Thread(
                target=target, name=f"domain-join:{instance_key}", daemon=True
            )
            self._threads[instance_key] = new_thread
            new_thread.start()
            return True

    def wait(self, instance_key: str, timeout: float | None = None) -> bool:
        """Block until the run for the instance ends; False on timeout."""
        with self._lock:
            thread = self._threads.get(instance_key)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()
