"""
Users API Endpoints.

Agency roster used by admins to choose assignment targets, and agent
deactivation / reactivation.
"""

from fastapi import APIRouter, Depends

from api.dependencies import ServiceContainer, get_container, get_current_user
from api.errors import to_http_exception
from api.models import AgencyAgentsResponse, AgentResponse
from domain.errors import LeadLifecycleError
from domain.user import User

router = APIRouter()


@router.get(
    "/users/agencies/{agency_id}/agents/",
    response_model=AgencyAgentsResponse,
    summary="Agency Agents",
    description="Agents of the agency with the count of active ones. Agency admins only."
)
def list_agency_agents(
    agency_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        agency = container.engine.get_agency_for(user, agency_id)
        agents = container.engine.list_agency_agents(user, agency_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)

    agents = sorted(agents, key=lambda agent: (agent.full_name.lower(), agent.id))
    return AgencyAgentsResponse(
        agency_id=agency.id,
        agency_name=agency.name,
        license_valid_until=agency.license_valid_until,
        agents=[AgentResponse.from_domain(agent) for agent in agents],
        total_agents=len(agents),
        active_agents=sum(1 for agent in agents if agent.is_active),
    )


@router.patch(
    "/users/{user_id}/deactivate/",
    response_model=AgentResponse,
    summary="Deactivate Agent",
    description="Admin of the agent's agency stops the agent from receiving or acting on leads."
)
def deactivate_agent(
    user_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """
    Deactivate an agent.

    - 404 if the user is not an agent
    - 403 unless the caller is an admin of the agent's agency
    - Deactivating an inactive agent is a no-op
    """
    try:
        agent = container.engine.deactivate_agent(user, user_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return AgentResponse.from_domain(agent)


@router.patch(
    "/users/{user_id}/reactivate/",
    response_model=AgentResponse,
    summary="Reactivate Agent",
    description="Admin of the agent's agency lets a deactivated agent receive leads again."
)
def reactivate_agent(
    user_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        agent = container.engine.reactivate_agent(user, user_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return AgentResponse.from_domain(agent)
