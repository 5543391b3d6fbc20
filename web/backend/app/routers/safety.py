"""Safety API router: crisis resources and the intervention audit trail.

Prefix: ``/api/safety``
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from aimate.safety.audit_log import ACTIONS
from aimate.safety.plugin import PLUGIN_ID, MentalHealthSafetyPlugin
from web.backend.app.models.api import (
    CrisisResourcesResponse,
    HotlineResponse,
    SafetyAuditEntryResponse,
)
from web.backend.app.runtime import Runtime, get_runtime

router = APIRouter(prefix="/api/safety", tags=["safety"])


@router.get("/resources/{region}", response_model=CrisisResourcesResponse)
async def crisis_resources(region: str, runtime: Runtime = Depends(get_runtime)):
    """Crisis contacts for *region*; unknown regions fall back with ``matched=false``."""
    plugin = runtime.plugins.get_plugin(PLUGIN_ID)
    if not isinstance(plugin, MentalHealthSafetyPlugin):
        raise HTTPException(status_code=404, detail="Safety plugin is not loaded")
    res, matched = plugin.crisis_resources(region)
    return CrisisResourcesResponse(
        code=res.code,
        region=res.region,
        emergency=res.emergency,
        hotlines=[HotlineResponse(**asdict(h)) for h in res.hotlines],
        web_chats=res.web_chats,
        matched=matched,
    )


@router.get("/audit", response_model=list[SafetyAuditEntryResponse])
async def audit_events(
    action: Optional[str] = Query(None),
    conversation_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    runtime: Runtime = Depends(get_runtime),
):
    """Recorded safety interventions, newest first."""
    if action is not None and action not in ACTIONS:
        raise HTTPException(
            status_code=400, detail=f"Unknown action '{action}'. Use one of: {', '.join(ACTIONS)}"
        )
    events = runtime.audit_log.get_events(
        action=action, conversation_id=conversation_id, limit=limit
    )
    return [SafetyAuditEntryResponse(**asdict(e)) for e in events]
