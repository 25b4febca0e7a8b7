"""
Leads API Endpoints.

Submission, lifecycle transitions (assign, accept/reject, complete, fail),
explicit notifications, history, role listings and stats.

The acting user always comes from the bearer token (`get_current_user`).
"""

from fastapi import APIRouter, Depends, Request

from api.dependencies import ServiceContainer, get_container, get_current_user
from api.errors import to_http_exception
from api.models import (
    AssignRequest,
    CompleteRequest,
    FailRequest,
    LeadEventResponse,
    LeadPage,
    LeadResponse,
    LeadStatsResponse,
    LeadSubmitRequest,
    NotifyRequest,
    RespondRequest,
    UpdateResponse,
)
from api.pagination import PageParams, paginate
from domain.errors import LeadLifecycleError
from domain.lead import LeadImage
from domain.user import User
from services.lifecycle_service import LeadSubmission

router = APIRouter()


# ============================================================================
# Submission and detail
# ============================================================================

@router.post(
    "/leads/submit/",
    response_model=LeadResponse,
    status_code=201,
    summary="Submit Lead",
    description="Spotter reports a property for sale. The lead starts as 'new'."
)
def submit_lead(
    request: LeadSubmitRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """
    Submit a new lead.

    Requires first_name, last_name and either phone or email. The lead goes to
    the requested agent's agency, or to `agency_id` when no agent is requested.
    """
    submission = LeadSubmission(
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        phone=request.phone,
        street_address=request.street_address,
        suburb=request.suburb,
        notes_text=request.notes_text,
        images=tuple(LeadImage(image=img.image, description=img.description) for img in request.images),
        requested_agent_id=request.requested_agent_id,
        agency_id=request.agency_id,
    )
    try:
        lead = container.engine.submit_lead(user, submission)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.get(
    "/leads/{lead_id}/",
    response_model=LeadResponse,
    summary="Get Lead",
    description="Fetch one lead. Visible to its spotter, its assigned agent and its agency's admins."
)
def get_lead(
    lead_id: int,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        lead = container.engine.get_lead_for(user, lead_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.get(
    "/leads/{lead_id}/history/",
    response_model=list[LeadEventResponse],
    summary="Lead History",
    description="Transitions applied to the lead, oldest first."
)
def get_lead_history(
    lead_id: int,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        events = container.engine.history(user, lead_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return [LeadEventResponse.from_domain(event) for event in events]


# ============================================================================
# Transitions
# ============================================================================

@router.patch(
    "/leads/{lead_id}/assign/",
    response_model=LeadResponse,
    summary="Assign Lead",
    description="Agency admin assigns (or reassigns) a lead to one of the agency's agents."
)
def assign_lead(
    lead_id: int,
    request: AssignRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """
    Assign a lead.

    **Rules:**
    - Only an admin of the lead's agency may assign
    - The lead must be `new` or `assigned` (reassignment replaces the agent)
    - An accepted (`in_progress`) lead cannot be reassigned: 409 LeadAlreadyInProgress
    - The agent must be active and belong to the same agency

    The agent receives an ASSIGNMENT update.
    """
    try:
        lead = container.engine.assign(user, lead_id, request.agent_id, request.notes)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.patch(
    "/leads/{lead_id}/accept/",
    response_model=LeadResponse,
    summary="Accept or Reject Lead",
    description="Assigned agent accepts (in_progress) or rejects the assignment."
)
def respond_to_lead(
    lead_id: int,
    request: RespondRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """
    Respond to an assignment.

    **Example request:**
    ```json
    {"action": "accept", "notes": "Calling the owner today"}
    ```

    Accepting notifies the spotter. Rejecting clears the agent and notifies the
    agency admins; the lead is closed, or returned to `new` when the platform
    runs the `reopen` rejection policy.
    """
    try:
        lead = container.engine.respond(user, lead_id, request.action, request.notes)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.patch(
    "/leads/{lead_id}/complete/",
    response_model=LeadResponse,
    summary="Complete Lead",
    description="Assigned agent records the sale; commissions are computed from the final price."
)
def complete_lead(
    lead_id: int,
    request: CompleteRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """
    Complete a lead.

    **Success response (excerpt):**
    ```json
    {
      "id": 42,
      "status": "completed",
      "final_price": "500000",
      "agreed_commission_amount": "25000.00",
      "spotter_commission_amount": "2500.00"
    }
    ```
    """
    try:
        lead = container.engine.complete(user, lead_id, request.final_price, request.notes)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.patch(
    "/leads/{lead_id}/fail/",
    response_model=LeadResponse,
    summary="Fail Lead",
    description="Assigned agent closes the lead without a sale. A reason is required."
)
def fail_lead(
    lead_id: int,
    request: FailRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        lead = container.engine.fail(user, lead_id, request.reason, request.notes)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadResponse.from_domain(lead)


@router.post(
    "/leads/{lead_id}/notify/",
    response_model=UpdateResponse,
    status_code=201,
    summary="Notify Spotter",
    description="Send a templated update about the lead to its spotter."
)
def notify_spotter(
    lead_id: int,
    request: NotifyRequest,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        update = container.engine.notify(user, lead_id, request.template_name, request.variables)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return UpdateResponse.from_domain(update)


# ============================================================================
# Listings
# ============================================================================

@router.get(
    "/leads/spotter/{spotter_id}/",
    response_model=LeadPage,
    summary="Spotter Leads",
    description="Leads submitted by the spotter, newest first."
)
def list_spotter_leads(
    spotter_id: str,
    request: Request,
    page: PageParams = Depends(),
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        leads = container.engine.list_spotter_leads(user, spotter_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return paginate(request, leads, page, LeadResponse.from_domain)


@router.get(
    "/leads/agency/{agency_id}/",
    response_model=LeadPage,
    summary="Agency Leads",
    description="All leads of the agency, newest first. Agency admins only."
)
def list_agency_leads(
    agency_id: str,
    request: Request,
    page: PageParams = Depends(),
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        leads = container.engine.list_agency_leads(user, agency_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return paginate(request, leads, page, LeadResponse.from_domain)


@router.get(
    "/leads/agent/{agent_id}/",
    response_model=LeadPage,
    summary="Agent Leads",
    description="Leads held by the agent. Only assigned/in_progress leads unless show_all=true."
)
def list_agent_leads(
    agent_id: str,
    request: Request,
    show_all: bool = False,
    page: PageParams = Depends(),
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        leads = container.engine.list_agent_leads(user, agent_id, show_all=show_all)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return paginate(request, leads, page, LeadResponse.from_domain)


# ============================================================================
# Stats
# ============================================================================

@router.get(
    "/leads/spotter/{spotter_id}/stats/",
    response_model=LeadStatsResponse,
    summary="Spotter Stats"
)
def spotter_stats(
    spotter_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        container.engine.check_spotter_access(user, spotter_id)
        stats = container.aggregation.stats_for_spotter(spotter_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadStatsResponse.from_domain(stats)


@router.get(
    "/leads/agency/{agency_id}/stats/",
    response_model=LeadStatsResponse,
    summary="Agency Stats"
)
def agency_stats(
    agency_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        container.engine.check_agency_access(user, agency_id)
        stats = container.aggregation.stats_for_agency(agency_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadStatsResponse.from_domain(stats)


@router.get(
    "/leads/agent/{agent_id}/stats/",
    response_model=LeadStatsResponse,
    summary="Agent Stats"
)
def agent_stats(
    agent_id: str,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        container.engine.check_agent_access(user, agent_id)
        stats = container.aggregation.stats_for_agent(agent_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return LeadStatsResponse.from_domain(stats)
