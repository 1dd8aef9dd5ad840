"""
FastAPI dependencies.
"""

from uuid import UUID

from fastapi import Header, Request

from contractguard.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The process-wide service container owned by the app lifespan."""
    return request.app.state.container


def get_tenant_id(x_tenant_id: UUID = Header(..., description="Owning organization")) -> UUID:
    return x_tenant_id
