import asyncio
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status
from starlette.concurrency import run_in_threadpool

from leave_tracker.core.exceptions import AuthenticationError
from leave_tracker.dependencies import get_directory, get_workflow
from leave_tracker.models.leave_request import LeaveCategory, LeaveStatus, RequestKind
from leave_tracker.routers.auth_deps import actor_from_token, get_current_actor, require_approver
from leave_tracker.schemas.leave import (
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestSnapshot,
    LeaveStats,
    TeamMember,
)
from leave_tracker.services.leave_workflow import LeaveWorkflowService
from leave_tracker.services.routing import Actor, UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave", tags=["leave"])


# --- Endpoints ---

@router.post("/requests", response_model=LeaveRequestSnapshot, status_code=status.HTTP_201_CREATED)
def submit_leave_request(
    request: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.submit(
        requester_id=actor.id,
        kind=request.kind,
        category=request.category,
        start=request.start_date,
        end=request.end_date,
        reason=request.reason,
        description=request.description,
    )

@router.get("/requests", response_model=List[LeaveRequestSnapshot])
def list_leave_requests(
    status_filter: Optional[LeaveStatus] = Query(default=None, alias="status"),
    category: Optional[LeaveCategory] = Query(default=None),
    kind: Optional[RequestKind] = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.list_for(actor.id, actor.role, status=status_filter, category=category, kind=kind)

@router.get("/requests/{request_id}", response_model=LeaveRequestSnapshot)
def get_leave_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.get_for(actor.id, actor.role, request_id)

@router.post("/requests/{request_id}/decision", response_model=LeaveRequestSnapshot)
def decide_leave_request(
    request_id: int,
    body: LeaveDecisionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.decide(
        request_id=request_id,
        actor_id=actor.id,
        actor_role=actor.role,
        decision=body.decision,
        remarks=body.remarks,
    )

@router.get("/calendar", response_model=List[LeaveRequestSnapshot])
def leave_calendar(
    on: Optional[date] = Query(default=None, description="Day to inspect, defaults to today"),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.calendar_for(actor.id, actor.role, on or date.today())

@router.get("/stats", response_model=LeaveStats)
def leave_stats(
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return workflow.stats_for(actor.id, actor.role)

@router.get("/team", response_model=List[TeamMember])
def my_team(
    actor: Actor = Depends(require_approver()),
    workflow: LeaveWorkflowService = Depends(get_workflow),
):
    return [
        TeamMember(id=m.id, email=m.email, full_name=m.label, role=m.role)
        for m in workflow.team_of(actor.id)
    ]


# --- Live feed ---

async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return

@router.websocket("/requests/live")
async def live_leave_requests(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    workflow: LeaveWorkflowService = Depends(get_workflow),
    directory: UserDirectory = Depends(get_directory),
):
    """
    Pushes the viewer's full request list on connect and after every change to it.
    The subscription ends when the client disconnects.
    """
    try:
        actor = await run_in_threadpool(actor_from_token, token, directory)
    except AuthenticationError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue = asyncio.Queue()

    def push(snapshots: List[LeaveRequestSnapshot]) -> None:
        payload = [s.model_dump(mode="json") for s in snapshots]
        loop.call_soon_threadsafe(updates.put_nowait, payload)

    subscription = await run_in_threadpool(workflow.watch_for, actor.id, actor.role, push)
    disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
    try:
        while True:
            next_update = asyncio.ensure_future(updates.get())
            done, _ = await asyncio.wait({next_update, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected in done:
                next_update.cancel()
                break
            await websocket.send_json({"type": "snapshot", "requests": next_update.result()})
    finally:
        subscription.cancel()
        disconnected.cancel()
        logger.info(f"Live feed closed for user {actor.id}")
