from fastapi import APIRouter
from fieldforms.api.v1.endpoints import forms, agents, submissions, team, rollover, audit

api_router = APIRouter()

api_router.include_router(forms.router, prefix="/forms", tags=["forms"])
api_router.include_router(agents.router, prefix="/agents", tags=["agents"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(team.router, prefix="/team", tags=["team"])
api_router.include_router(rollover.router, prefix="/rollover", tags=["rollover"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["audit"])
