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
"""FastAPI entrypoint for the domain-join service."""

import asyncio
import logging
import os
from uuid import uuid4

from fastapi import Body, FastAPI, HTTPException
from fastapi import WebSocket, WebSocketDisconnect

from domain_join.app.api.schemas import (
    AsyncJoinResponse,
    ForceClearRequest,
    ForceClearResponse,
    InstanceMetadataResponse,
    JoinDomainRequest,
    MetadataItemPayload,
    OperationEventResponse,
    OperationResponse,
)
from domain_join.app.application.compute_client import ComputeClient
from domain_join.app.application.events import OperationEvent, utc_now
from domain_join.app.application.join_engine import JoinEngine, JoinEngineConfig
from domain_join.app.domain.errors import ControlPlaneError
from domain_join.app.domain.models import (
    TERMINAL_STATES,
    DomainCredential,
    InstanceLocator,
    JoinOperation,
    JoinOutcome,
    MetadataItem,
)
from domain_join.app.infrastructure.compute_engine_client import ComputeEngineClient
from domain_join.app.infrastructure.in_memory_compute_client import (
    InMemoryComputeClient,
)
from domain_join.app.infrastructure.in_memory_control_store import InMemoryControlStore
from domain_join.app.infrastructure.in_memory_event_store import InMemoryEventStore
from domain_join.app.infrastructure.in_memory_operation_store import (
    InMemoryOperationStore,
)
from domain_join.app.infrastructure.run_coordinator import RunCoordinator
from domain_join.app.infrastructure.simulated_guest import SimulatedGuest

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Out-of-band Domain Join Service",
    version="0.1.0",
)


def resolve_client_mode() -> str:
    return os.getenv("DOMAIN_JOIN_CLIENT_MODE", "simulated").strip().lower()


def resolve_engine_config() -> JoinEngineConfig:
    poll_ms = int(os.getenv("DOMAIN_JOIN_POLL_INTERVAL_MS", "500").strip() or "500")
    timeout_raw = os.getenv("DOMAIN_JOIN_AWAIT_TIMEOUT_S", "").strip()
    return JoinEngineConfig(
        poll_interval=poll_ms / 1000.0,
        await_timeout=float(timeout_raw) if timeout_raw else None,
    )


store = InMemoryOperationStore()
event_store = InMemoryEventStore()
control_store = InMemoryControlStore()
run_coordinator = RunCoordinator()

simulated_client: InMemoryComputeClient | None = None
if resolve_client_mode() == "gce":
    client: ComputeClient = ComputeEngineClient()
else:
    simulated_client = InMemoryComputeClient()
    SimulatedGuest(simulated_client)
    client = simulated_client
engine = JoinEngine(
    client=client,
    config=resolve_engine_config(),
    publisher=event_store,
    repository=store,
)


def to_response(operation: JoinOperation) -> OperationResponse:
    """Convert domain model to API response."""
    return OperationResponse(
        operation_id=operation.operation_id,
        instance=operation.instance.key,
        domain=operation.domain,
        new_computer_name=operation.new_computer_name,
        state=operation.state.value,
        created_at=operation.created_at,
        completed_at=operation.completed_at,
        failure_reason=(
            operation.failure_reason.value if operation.failure_reason else None
        ),
        error=operation.error,
        restore_error=operation.restore_error,
    )


def _execute_join(
    instance: InstanceLocator, payload: JoinDomainRequest, operation_id: str
) -> JoinOutcome:
    control = control_store.get_or_create(operation_id)
    try:
        return engine.join_domain(
            instance=instance,
            domain=payload.domain,
            new_computer_name=payload.new_computer_name,
            credential=DomainCredential(
                username=payload.username, password=payload.password
            ),
            control=control,
            operation_id=operation_id,
        )
    finally:
        control_store.release(operation_id)


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health endpoint."""
    return {"status": "ok", "client_mode": resolve_client_mode()}


@app.put("/api/v2/simulated/instances/{project_id}/{zone}/{name}")
def register_simulated_instance(
    project_id: str,
    zone: str,
    name: str,
    metadata: dict[str, str] = Body(default={}),
) -> dict[str, str]:
    """Create or overwrite an instance in the simulated control plane."""
    if simulated_client is None:
        raise HTTPException(status_code=409, detail="Not running in simulated mode")
    instance = InstanceLocator(project_id=project_id, zone=zone, name=name)
    simulated_client.add_instance(instance, metadata)
    return {"instance": instance.key}


@app.get(
    "/api/v2/instances/{project_id}/{zone}/{name}/metadata",
    response_model=InstanceMetadataResponse,
)
def get_instance_metadata(
    project_id: str, zone: str, name: str
) -> InstanceMetadataResponse:
    """Return the instance's current custom metadata."""
    instance = InstanceLocator(project_id=project_id, zone=zone, name=name)
    try:
        metadata = client.get_metadata(instance)
    except ControlPlaneError as exc:
        raise HTTPException(status_code=exc.status_code or 502, detail=str(exc)) from exc
    return InstanceMetadataResponse(
        instance=instance.key,
        fingerprint=metadata.fingerprint,
        items=metadata.as_dict(),
    )


@app.post(
    "/api/v2/instances/{project_id}/{zone}/{name}/join",
    response_model=OperationResponse,
)
def join_domain(
    project_id: str, zone: str, name: str, payload: JoinDomainRequest
) -> OperationResponse:
    """Join an instance to a domain and wait for the outcome."""
    instance = InstanceLocator(project_id=project_id, zone=zone, name=name)
    if run_coordinator.is_running(instance.key):
        raise HTTPException(status_code=409, detail="Join already in progress")
    try:
        outcome = _execute_join(instance, payload, str(uuid4()))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    operation = store.get(outcome.operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return to_response(operation)


@app.post(
    "/api/v2/instances/{project_id}/{zone}/{name}/join/async",
    response_model=AsyncJoinResponse,
)
def join_domain_async(
    project_id: str, zone: str, name: str, payload: JoinDomainRequest
) -> AsyncJoinResponse:
    """Join an instance to a domain in a background thread."""
    instance = InstanceLocator(project_id=project_id, zone=zone, name=name)
    operation_id = str(uuid4())
    control_store.get_or_create(operation_id)

    def run() -> None:
        try:
            _execute_join(instance, payload, operation_id)
        except Exception:
            logger.exception("Background join %s crashed", operation_id)

    started = run_coordinator.start(instance.key, run)
    if not started:
        control_store.release(operation_id)
        raise HTTPException(status_code=409, detail="Join already in progress")
    event_store.publish(
        OperationEvent(
            type="operation_status",
            operation_id=operation_id,
            timestamp=utc_now(),
            instance=instance.key,
            message="Async join started",
        )
    )
    return AsyncJoinResponse(operation_id=operation_id, instance=instance.key)


@app.post(
    "/api/v2/instances/{project_id}/{zone}/{name}/force-clear",
    response_model=ForceClearResponse,
)
def force_clear(
    project_id: str, zone: str, name: str, payload: ForceClearRequest
) -> ForceClearResponse:
    """Remove leftover join keys and reinstate a startup-script snapshot."""
    instance = InstanceLocator(project_id=project_id, zone=zone, name=name)
    if run_coordinator.is_running(instance.key):
        raise HTTPException(status_code=409, detail="Join in progress")
    try:
        removed = engine.force_clear(
            instance,
            [MetadataItem(key=item.key, value=item.value) for item in payload.items],
        )
    except ControlPlaneError as exc:
        raise HTTPException(status_code=exc.status_code or 502, detail=str(exc)) from exc
    return ForceClearResponse(
        removed_items=[
            MetadataItemPayload(key=item.key, value=item.value) for item in removed
        ]
    )


@app.get("/api/v2/operations", response_model=list[OperationResponse])
def list_operations() -> list[OperationResponse]:
    """List operations in reverse chronological order."""
    operations = store.list()
    operations.sort(key=lambda item: item.created_at, reverse=True)
    return [to_response(operation) for operation in operations]


@app.get("/api/v2/operations/{operation_id}", response_model=OperationResponse)
def get_operation(operation_id: str) -> OperationResponse:
    """Fetch operation details."""
    operation = store.get(operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return to_response(operation)


@app.get(
    "/api/v2/operations/{operation_id}/events",
    response_model=list[OperationEventResponse],
)
def list_operation_events(operation_id: str) -> list[OperationEventResponse]:
    """List buffered events for an operation."""
    events = event_store.list_events(operation_id=operation_id)
    return [
        OperationEventResponse(
            type=e.type,
            operation_id=e.operation_id,
            timestamp=e.timestamp,
            instance=e.instance,
            state=e.state,
            message=e.message,
        )
        for e in events
    ]


@app.post("/api/v2/operations/{operation_id}/cancel", response_model=OperationResponse)
def cancel_operation(operation_id: str) -> OperationResponse:
    """Request cancellation of a running operation."""
    operation = store.get(operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    if operation.state in TERMINAL_STATES:
        raise HTTPException(status_code=400, detail="Operation already finished")
    control = control_store.get(operation_id)
    if control is None:
        raise HTTPException(status_code=409, detail="No run control available")
    control.cancel()
    event_store.publish(
        OperationEvent(
            type="operation_status",
            operation_id=operation_id,
            timestamp=utc_now(),
            instance=operation.instance.key,
            state=operation.state.value,
            message="Cancel requested",
        )
    )
    return to_response(operation)


@app.websocket("/ws/v2/operations/{operation_id}")
async def ws_operation_events(websocket: WebSocket, operation_id: str) -> None:
    """Stream in-memory events for an operation."""
    await websocket.accept()
    cursor = 0
    try:
        while True:
            events = event_store.list_events(
                operation_id=operation_id, start_index=cursor
            )
            for event in events:
                await websocket.send_json(
                    {
                        "type": event.type,
                        "operation_id": event.operation_id,
                        "timestamp": event.timestamp,
                        "instance": event.instance,
                        "state": event.state,
                        "message": event.message,
                    }
                )
                cursor += 1
                if event.type == "operation_complete":
                    await websocket.close()
                    return
            await asyncio.sleep(0.2)
    except WebSocketDisconnect:
        return
