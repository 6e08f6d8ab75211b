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
"""Unit tests for domain models."""

import pytest

from domain_join.app.domain.models import DomainCredential, InstanceLocator


@pytest.mark.parametrize(
    ("username", "domain", "expected"),
    [
        ("CORP\\admin", "corp.example", "CORP\\admin"),
        (" CORP \\ admin ", None, "CORP\\admin"),
        ("admin@corp.example", "other.example", "admin@corp.example"),
        (" admin ", "corp.example", "admin@corp.example"),
        ("admin", None, "admin"),
    ],
)
def test_normalized_username(username, domain, expected):
    credential = DomainCredential(username=username, password="secret")

    assert credential.normalized_username(domain) == expected


def test_credential_repr_hides_password():
    assert "secret" not in repr(DomainCredential(username="admin", password="secret"))


def test_instance_key():
    instance = InstanceLocator(project_id="p", zone="z", name="vm")

    assert instance.key == "p/z/vm"
