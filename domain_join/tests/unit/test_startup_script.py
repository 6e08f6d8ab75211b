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
"""Unit tests for the startup script template."""

from domain_join.app.application.startup_script import (
    OPERATION_ID_PLACEHOLDER,
    create_startup_script,
    operation_id_from_script,
)


def test_operation_id_is_substituted():
    script = create_startup_script("3f1c0c8e-op")

    assert OPERATION_ID_PLACEHOLDER not in script
    assert '$OperationId = "3f1c0c8e-op"' in script
    assert "COM4" in script
    assert "OaepSHA256" in script


def test_operation_id_is_recovered_from_script():
    assert operation_id_from_script(create_startup_script("op-42")) == "op-42"


def test_foreign_scripts_have_no_operation_id():
    assert operation_id_from_script("echo hello") is None
    assert operation_id_from_script(None) is None
