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
"""Wire messages exchanged with the guest.

Hello and JoinResponse travel guest -> client over the serial console,
JoinRequest travels client -> guest through a metadata key. All of them
are single-line JSON objects with PascalCase field names.
"""

from __future__ import annotations

from typing import ClassVar, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import CryptographicError, ProtocolError


class ProtocolMessage(BaseModel):
    """Fields shared by all protocol messages."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    MESSAGE_TYPE: ClassVar[str] = ""
    KEY_FIELDS: ClassVar[frozenset[str]] = frozenset()

    operation_id: str = Field(alias="OperationId")
    message_type: str = Field(alias="MessageType")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class HelloMessage(ProtocolMessage):
    """Guest -> client: guest is ready and advertises its ephemeral key."""

    MESSAGE_TYPE: ClassVar[str] = "hello"
    KEY_FIELDS: ClassVar[frozenset[str]] = frozenset({"Modulus", "Exponent"})

    modulus: str = Field(alias="Modulus")
    exponent: str = Field(alias="Exponent")


class JoinRequest(ProtocolMessage):
    """Client -> guest: join request with the encrypted password."""

    MESSAGE_TYPE: ClassVar[str] = "join-request"

    domain_name: str = Field(alias="DomainName")
    new_computer_name: Optional[str] = Field(default=None, alias="NewComputerName")
    username: str = Field(alias="Username")
    encrypted_password: str = Field(alias="EncryptedPassword")


class JoinResponse(ProtocolMessage):
    """Guest -> client: result of the join."""

    MESSAGE_TYPE: ClassVar[str] = "join-response"

    succeeded: Optional[bool] = Field(default=None, alias="Succeeded")
    error_details: Optional[str] = Field(default=None, alias="ErrorDetails")


TMessage = TypeVar("TMessage", bound=ProtocolMessage)


def parse_message(line: str, model: Type[TMessage]) -> TMessage:
    """Parse the JSON object embedded in one line of serial output.

    Console lines may carry a prefix (timestamps, terminal noise), so
    only the text between the first '{' and the last '}' is parsed.
    """
    start = line.find("{")
    end = line.rfind("}")
    if start < 0 or end < start:
        raise ProtocolError(f"No JSON object found in line: {line[:80]!r}")
    try:
        message = model.model_validate_json(line[start : end + 1])
    except ValidationError as exc:
        fields = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        if fields and fields <= model.KEY_FIELDS:
            raise CryptographicError(
                f"Malformed public key in {model.MESSAGE_TYPE} message: "
                f"{', '.join(sorted(fields))}"
            ) from exc
        raise ProtocolError(
            f"Malformed {model.MESSAGE_TYPE} message: {exc.error_count()} error(s)"
        ) from exc
    if message.message_type != model.MESSAGE_TYPE:
        raise ProtocolError(
            f"Expected message type {model.MESSAGE_TYPE}, "
            f"got {message.message_type}"
        )
    return message
