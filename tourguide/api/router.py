from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from tourguide.context.session import TourSession
from tourguide.dependencies import get_dispatcher, get_notification_bus
from tourguide.models import (
    GraceWindowOut,
    LocationReport,
    NotificationOut,
    Position,
    SessionSnapshot,
    VisibilityReport,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions")


def _snapshot(session: TourSession) -> SessionSnapshot:
    state = session.state
    now = session.grace.now()
    windows = [
        GraceWindowOut(kind=str(w.kind), remaining_seconds=round(w.remaining(now), 1))
        for w in session.grace.open_windows(now)
    ]
    return SessionSnapshot(
        conversation_id=session.conversation_id,
        active=state.active,
        mentioned_pois=sorted(state.mentioned_pois),
        tracked_distances={k: round(v, 1) for k, v in state.last_distance_by_poi.items()},
        open_grace_windows=windows,
        last_position=session.last_position,
        permission_state=str(session.location.permission_state),
    )


def _require(request: Request, conversation_id: str) -> TourSession:
    session = get_dispatcher(request).get(conversation_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No active session {conversation_id}")
    return session


@router.post("/{conversation_id}", response_model=SessionSnapshot, status_code=201)
async def start_session(request: Request, conversation_id: str) -> SessionSnapshot:
    session = await get_dispatcher(request).start(conversation_id)
    return _snapshot(session)


@router.delete("/{conversation_id}", status_code=204)
async def stop_session(request: Request, conversation_id: str) -> Response:
    if not await get_dispatcher(request).stop(conversation_id):
        raise HTTPException(status_code=404, detail=f"No active session {conversation_id}")
    return Response(status_code=204)


@router.get("/{conversation_id}", response_model=SessionSnapshot)
async def get_session(request: Request, conversation_id: str) -> SessionSnapshot:
    return _snapshot(_require(request, conversation_id))


@router.post("/{conversation_id}/location", status_code=202)
async def report_location(request: Request, conversation_id: str, report: LocationReport) -> dict:
    session = _require(request, conversation_id)
    if report.error is not None:
        failure = session.location.report_failure(report.error)
        return {"accepted": False, "failure": str(failure.kind)}

    if report.latitude is None or report.longitude is None:
        raise HTTPException(status_code=422, detail="latitude and longitude are required")

    fields: dict = {
        "latitude": report.latitude,
        "longitude": report.longitude,
        "accuracy_m": report.accuracy_m,
    }
    if report.captured_at is not None:
        fields["captured_at"] = report.captured_at
    accepted = session.location.push(Position(**fields))
    return {"accepted": accepted}


@router.post("/{conversation_id}/visibility", status_code=202)
async def report_visibility(request: Request, conversation_id: str, report: VisibilityReport) -> dict:
    _require(request, conversation_id)
    get_dispatcher(request).set_visibility(conversation_id, report.visible)
    return {"visible": report.visible}


@router.post("/{conversation_id}/refresh", status_code=202)
async def refresh_session(request: Request, conversation_id: str) -> dict:
    _require(request, conversation_id)
    return {"queued": get_dispatcher(request).refresh(conversation_id)}


@router.get("/{conversation_id}/notifications", response_model=list[NotificationOut])
async def recent_notifications(request: Request, conversation_id: str) -> list[NotificationOut]:
    _require(request, conversation_id)
    out = []
    for note in get_notification_bus(request).recent(conversation_id):
        event = note.event
        reading = event.reading
        out.append(
            NotificationOut(
                kind=str(event.kind),
                tier=event.tier.name if event.tier else None,
                poi_id=reading.poi.id if reading else None,
                poi_name=reading.poi.name if reading else None,
                distance_m=round(reading.distance_m, 1) if reading else None,
            )
        )
    return out
