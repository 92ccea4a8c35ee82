from fastapi import APIRouter

from buildtrack.api.routes import audit_log, auth, boq, evidence, health, milestones, projects

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(boq.router, prefix="/projects/{project_id}/boq", tags=["boq"])
api_router.include_router(milestones.router, prefix="/projects/{project_id}/milestones", tags=["milestones"])
api_router.include_router(evidence.router, prefix="/projects/{project_id}", tags=["evidence"])
api_router.include_router(audit_log.router, prefix="/projects/{project_id}/audit-log", tags=["audit"])
