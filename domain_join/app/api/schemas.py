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
"""API schemas for the domain-join service."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class JoinDomainRequest(BaseModel):
    """Payload to join an instance to a domain."""

    domain: str = Field(min_length=1, max_length=255)
    new_computer_name: Optional[str] = Field(default=None, max_length=15)
    username: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=256)


class OperationResponse(BaseModel):
    """Join operation payload. Credentials are never included."""

    operation_id: str
    instance: str
    domain: str
    new_computer_name: Optional[str] = None
    state: str
    created_at: str
    completed_at: Optional[str] = None
    failure_reason: Optional[str] = None
    error: Optional[str] = None
    restore_error: Optional[str] = None


class AsyncJoinResponse(BaseModel):
    """Acknowledgement for a background join."""

    operation_id: str
    instance: str
    accepted: bool = True


class OperationEventResponse(BaseModel):
    """Single operation event."""

    type: str
    operation_id: str
    timestamp: str
    instance: Optional[str] = None
    state: Optional[str] = None
    message: Optional[str] = None


class MetadataItemPayload(BaseModel):
    """Metadata key/value pair."""

    key: str = Field(min_length=1, max_length=128)
    value: Optional[str] = None


class ForceClearRequest(BaseModel):
    """Snapshot of startup-script items to reinstate."""

    items: List[MetadataItemPayload] = Field(default_factory=list)


class ForceClearResponse(BaseModel):
    """Items removed by a force-clear."""

    removed_items: List[MetadataItemPayload]


class InstanceMetadataResponse(BaseModel):
    """Current custom metadata of an instance."""

    instance: str
    fingerprint: Optional[str] = None
    items: Dict[str, Optional[str]]
