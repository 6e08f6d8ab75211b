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
"""Encryption of the domain password with the guest's ephemeral key."""

from __future__ import annotations

import base64
import binascii

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from domain_join.app.domain.errors import CryptographicError

MIN_KEY_SIZE = 2048


def _decode_integer(value: str, name: str) -> int:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptographicError(f"Invalid base64 in public key {name}") from exc
    if not raw:
        raise CryptographicError(f"Public key {name} is empty")
    return int.from_bytes(raw, byteorder="big")


def load_public_key(modulus_b64: str, exponent_b64: str) -> rsa.RSAPublicKey:
    """Import an RSA public key from base64 big-endian modulus and exponent."""
    modulus = _decode_integer(modulus_b64, "modulus")
    exponent = _decode_integer(exponent_b64, "exponent")
    try:
        key = rsa.RSAPublicNumbers(e=exponent, n=modulus).public_key()
    except ValueError as exc:
        raise CryptographicError(f"Invalid public key: {exc}") from exc
    if key.key_size < MIN_KEY_SIZE:
        raise CryptographicError(
            f"Public key is too small ({key.key_size} bits, "
            f"at least {MIN_KEY_SIZE} required)"
        )
    return key


def encrypt_secret(secret: str | bytes, modulus_b64: str, exponent_b64: str) -> str:
    """Encrypt ``secret`` with RSA-OAEP (SHA-256) and return base64 ciphertext."""
    key = load_public_key(modulus_b64, exponent_b64)
    plaintext = secret.encode("utf-8") if isinstance(secret, str) else secret
    try:
        ciphertext = key.encrypt(
            plaintext,
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA256()),
                algorithm=hashes.SHA256(),
                label=None,
            ),
        )
    except ValueError as exc:
        raise CryptographicError(f"Encryption failed: {exc}") from exc
    return base64.b64encode(ciphertext).decode("ascii")
