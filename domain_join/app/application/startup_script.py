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
"""One-time guest startup script that performs the domain join."""

from __future__ import annotations

OPERATION_ID_PLACEHOLDER = "{{OPERATION_ID}}"

# Runs as a Windows startup script after the reset. Talks back to the client
# on COM4 and reads the join request from the iapdesktop-join metadata key.
_STARTUP_SCRIPT_TEMPLATE = r"""
$ErrorActionPreference = "Stop"

$OperationId = "{{OPERATION_ID}}"
$MetadataUrl = "http://metadata.google.internal/computeMetadata/v1/instance/attributes"

function Write-SerialPort($Message) {
    $Port = New-Object System.IO.Ports.SerialPort COM4
    $Port.Open()
    try {
        $Port.WriteLine(($Message | ConvertTo-Json -Compress))
    }
    finally {
        $Port.Close()
    }
}

function Read-JoinRequest {
    while ($true) {
        try {
            $Request = Invoke-RestMethod `
                -Headers @{"Metadata-Flavor" = "Google"} `
                -Uri "$MetadataUrl/iapdesktop-join" | ConvertFrom-Json
            if ($Request.OperationId -eq $OperationId -and
                $Request.MessageType -eq "join-request") {
                return $Request
            }
        }
        catch {
            # Key not written yet.
        }
        Start-Sleep -Seconds 1
    }
}

if ((Get-WmiObject Win32_ComputerSystem).PartOfDomain) {
    Write-SerialPort @{
        OperationId  = $OperationId
        MessageType  = "join-response"
        Succeeded    = $false
        ErrorDetails = "The computer is already joined to a domain"
    }
    return
}

$Key = New-Object System.Security.Cryptography.RSACng 3072
$PublicKey = $Key.ExportParameters($false)

Write-SerialPort @{
    OperationId = $OperationId
    MessageType = "hello"
    Modulus     = [Convert]::ToBase64String($PublicKey.Modulus)
    Exponent    = [Convert]::ToBase64String($PublicKey.Exponent)
}

$Request = Read-JoinRequest

try {
    $Password = [System.Text.Encoding]::UTF8.GetString($Key.Decrypt(
        [Convert]::FromBase64String($Request.EncryptedPassword),
        [System.Security.Cryptography.RSAEncryptionPadding]::OaepSHA256))
    $Credential = New-Object System.Management.Automation.PSCredential(
        $Request.Username,
        (ConvertTo-SecureString $Password -AsPlainText -Force))

    $JoinArguments = @{
        DomainName = $Request.DomainName
        Credential = $Credential
        Force      = $true
    }
    if ($Request.NewComputerName) {
        $JoinArguments["NewName"] = $Request.NewComputerName
    }
    Add-Computer @JoinArguments

    Write-SerialPort @{
        OperationId = $OperationId
        MessageType = "join-response"
        Succeeded   = $true
    }
    Restart-Computer -Force
}
catch {
    Write-SerialPort @{
        OperationId  = $OperationId
        MessageType  = "join-response"
        Succeeded    = $false
        ErrorDetails = $_.Exception.Message
    }
}
"""


def create_startup_script(operation_id: str) -> str:
    """Render the join script for one operation."""
    return _STARTUP_SCRIPT_TEMPLATE.lstrip("\n").replace(
        OPERATION_ID_PLACEHOLDER, operation_id
    )


def operation_id_from_script(script: str | None) -> str | None:
    """Recover the operation id from a rendered script, if it is one."""
    if not script:
        return None
    for line in script.splitlines():
        stripped = line.strip()
        if stripped.startswith("$OperationId = "):
            return stripped.split("=", 1)[1].strip().strip('"')
    return None
