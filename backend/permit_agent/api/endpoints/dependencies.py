from fastapi import Request

from permit_agent.service import PermitAgentService


def get_service(request: Request) -> PermitAgentService:
    """The service instance owned by the running application"""
    return request.app.state.service
