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
"""Unit tests for background run coordinator."""

from threading import Event

from domain_join.app.infrastructure.run_coordinator import RunCoordinator


def test_run_coordinator_rejects_second_join_for_same_instance():
    coordinator = RunCoordinator()
    release = Event()

    first = coordinator.start("p/z/vm-1", release.wait)
    second = coordinator.start("p/z/vm-1", release.wait)
    other = coordinator.start("p/z/vm-2", release.wait)

    assert first is True
    assert second is False
    assert other is True
    assert coordinator.is_running("p/z/vm-1") is True
    release.set()
    assert coordinator.wait("p/z/vm-1", timeout=5) is True
    assert coordinator.wait("p/z/vm-2", timeout=5) is True


def test_run_coordinator_allows_restart_after_thread_finishes():
    coordinator = RunCoordinator()

    assert coordinator.start("p/z/vm-3", lambda: None) is True
    assert coordinator.wait("p/z/vm-3", timeout=5) is True
    assert coordinator.is_running("p/z/vm-3") is False
    assert coordinator.start("p/z/vm-3", lambda: None) is True


def test_wait_for_unknown_instance_returns_immediately():
    assert RunCoordinator().wait("p/z/unknown") is True
