"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.lead import Lead
from domain.lifecycle import LeadEvent, allowed_actions
from domain.update import Update
from domain.user import User
from services.aggregation_service import LeadStats


# ============================================================================
# Lead Models
# ============================================================================

class LeadImageModel(BaseModel):
    """Image attached to a lead submission."""
    image: str
    description: str = ""


class LeadResponse(BaseModel):
    """Single lead in API response."""
    id: int
    status: str
    status_label: str
    is_accepted: bool
    spotter_id: str
    agency_id: str
    agent_id: Optional[str] = None
    requested_agent_id: Optional[str] = None
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: Optional[str] = None
    suburb: Optional[str] = None
    notes_text: str = ""
    images: List[LeadImageModel] = []
    final_price: Optional[Decimal] = None
    agreed_commission_amount: Optional[Decimal] = None
    spotter_commission_amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int
    allowed_actions: List[str] = []

    class Config:
        json_schema_extra = {
            "example": {
                "id": 42,
                "status": "completed",
                "status_label": "Completed",
                "is_accepted": True,
                "spotter_id": "5b7c1e0a-0d7e-4a51-9a43-2f1f7c1a9d10",
                "agency_id": "c0a8012e-7f3b-4d6a-8a1e-3b9f5d2e6c44",
                "agent_id": "A7",
                "first_name": "Jane",
                "last_name": "Owner",
                "phone": "0400 000 000",
                "suburb": "Newtown",
                "final_price": "500000",
                "agreed_commission_amount": "25000.00",
                "spotter_commission_amount": "2500.00",
                "created_at": "2025-01-01T12:00:00Z",
                "closed_at": "2025-02-01T09:30:00Z",
                "version": 4,
                "allowed_actions": []
            }
        }

    @classmethod
    def from_domain(cls, lead: Lead) -> "LeadResponse":
        return cls(
            id=lead.id,
            status=lead.status.value,
            status_label=lead.status.label,
            is_accepted=lead.is_accepted,
            spotter_id=lead.spotter_id,
            agency_id=lead.agency_id,
            agent_id=lead.agent_id,
            requested_agent_id=lead.requested_agent_id,
            first_name=lead.first_name,
            last_name=lead.last_name,
            email=lead.email,
            phone=lead.phone,
            street_address=lead.street_address,
            suburb=lead.suburb,
            notes_text=lead.notes_text,
            images=[LeadImageModel(image=img.image, description=img.description) for img in lead.images],
            final_price=lead.final_price,
            agreed_commission_amount=lead.agreed_commission_amount,
            spotter_commission_amount=lead.spotter_commission_amount,
            failure_reason=lead.failure_reason,
            created_at=lead.created_at,
            assigned_at=lead.assigned_at,
            accepted_at=lead.accepted_at,
            closed_at=lead.closed_at,
            updated_at=lead.updated_at,
            version=lead.version,
            allowed_actions=[action.value for action in allowed_actions(lead.status)],
        )


class LeadPage(BaseModel):
    """Paginated list of leads."""
    count: int
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[LeadResponse]


class LeadSubmitRequest(BaseModel):
    """Request from a spotter reporting a property."""
    first_name: str = Field(..., description="Owner's first name")
    last_name: str = Field(..., description="Owner's last name")
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: Optional[str] = None
    suburb: Optional[str] = None
    notes_text: str = ""
    images: List[LeadImageModel] = []
    requested_agent_id: Optional[str] = Field(
        None,
        description="Agent the spotter would like to handle the lead; decides the agency"
    )
    agency_id: Optional[str] = Field(
        None,
        description="Agency to send the lead to when no agent is requested"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "first_name": "Jane",
                "last_name": "Owner",
                "phone": "0400 000 000",
                "street_address": "12 King St",
                "suburb": "Newtown",
                "notes_text": "Owner plans to sell after the summer",
                "agency_id": "c0a8012e-7f3b-4d6a-8a1e-3b9f5d2e6c44"
            }
        }


class AssignRequest(BaseModel):
    """Request to assign or reassign a lead."""
    agent_id: str = Field(..., description="Agent to assign the lead to")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"agent_id": "A7", "notes": "Close to your area"}
        }


class RespondRequest(BaseModel):
    """Agent's response to an assignment."""
    action: str = Field(..., description="'accept' or 'reject'")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"action": "accept", "notes": "Calling the owner today"}
        }


class CompleteRequest(BaseModel):
    """Request to close a lead as sold."""
    # Validated by the commission calculator so every bad value gets the same error shape.
    final_price: Any = Field(None, description="Final sale price, a positive decimal")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"final_price": "500000", "notes": "Settled"}
        }


class FailRequest(BaseModel):
    """Request to close a lead without a sale."""
    reason: Optional[str] = Field(None, description="Why the lead did not convert")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"reason": "Owner decided not to sell"}
        }


class NotifyRequest(BaseModel):
    """Request to send a templated update to the lead's spotter."""
    template_name: str
    variables: Dict[str, Any] = {}

    class Config:
        json_schema_extra = {
            "example": {
                "template_name": "lead_status",
                "variables": {"message": "Inspection booked for Saturday"}
            }
        }


class LeadEventResponse(BaseModel):
    """One entry of a lead's transition history."""
    id: Optional[int] = None
    lead_id: int
    action: str
    actor_id: str
    from_status: str
    to_status: str
    occurred_at: datetime
    agent_id: Optional[str] = None
    previous_agent_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, event: LeadEvent) -> "LeadEventResponse":
        return cls(
            id=event.id,
            lead_id=event.lead_id,
            action=event.action.value,
            actor_id=event.actor_id,
            from_status=event.from_status.value,
            to_status=event.to_status.value,
            occurred_at=event.occurred_at,
            agent_id=event.agent_id,
            previous_agent_id=event.previous_agent_id,
            notes=event.notes,
        )


class LeadStatsResponse(BaseModel):
    """Lead counts by status."""
    total: int
    new: int
    assigned: int
    in_progress: int
    completed: int
    closed: int
    active: int

    class Config:
        json_schema_extra = {
            "example": {
                "total": 12,
                "new": 2,
                "assigned": 3,
                "in_progress": 4,
                "completed": 2,
                "closed": 1,
                "active": 9
            }
        }

    @classmethod
    def from_domain(cls, stats: LeadStats) -> "LeadStatsResponse":
        return cls(**stats.as_dict())


# ============================================================================
# Update Models
# ============================================================================

class UpdateResponse(BaseModel):
    """Single update (notification) in API response."""
    id: int
    recipient_id: str
    title: str
    message: str
    update_type: str
    template_name: Optional[str] = None
    lead_id: Optional[int] = None
    delivery_status: str
    delivery_attempts: int
    created_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    is_read: bool

    class Config:
        json_schema_extra = {
            "example": {
                "id": 7,
                "recipient_id": "5b7c1e0a-0d7e-4a51-9a43-2f1f7c1a9d10",
                "title": "Commission earned",
                "message": "Lead #42 (Jane Owner) sold for 500,000.00. Your commission is 2,500.00.",
                "update_type": "COMMISSION",
                "template_name": "lead_completed",
                "lead_id": 42,
                "delivery_status": "delivered",
                "delivery_attempts": 1,
                "created_at": "2025-02-01T09:30:00Z",
                "delivered_at": "2025-02-01T09:30:01Z",
                "read_at": None,
                "is_read": False
            }
        }

    @classmethod
    def from_domain(cls, update: Update) -> "UpdateResponse":
        return cls(
            id=update.id,
            recipient_id=update.recipient_id,
            title=update.title,
            message=update.message,
            update_type=update.update_type.value,
            template_name=update.template_name,
            lead_id=update.lead_id,
            delivery_status=update.delivery_status.value,
            delivery_attempts=update.delivery_attempts,
            created_at=update.created_at,
            delivered_at=update.delivered_at,
            read_at=update.read_at,
            is_read=update.is_read,
        )


class UpdatePage(BaseModel):
    """Paginated list of updates."""
    count: int
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[UpdateResponse]


# ============================================================================
# User Models
# ============================================================================

class AgentResponse(BaseModel):
    """Agent in an agency roster."""
    id: str
    email: str
    username: Optional[str] = None
    first_name: str
    last_name: str
    full_name: str
    phone: Optional[str] = None
    is_active: bool

    @classmethod
    def from_domain(cls, user: User) -> "AgentResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            phone=user.phone,
            is_active=user.is_active,
        )


class AgencyAgentsResponse(BaseModel):
    """Response for the agency roster."""
    agency_id: str
    agency_name: str
    license_valid_until: Optional[date] = None
    agents: List[AgentResponse]
    total_agents: int
    active_agents: int


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response (returned under the `detail` key)."""
    error: str
    detail: Optional[str] = None
    status_code: int
    fields: Optional[Dict[str, str]] = None
    retryable: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "InvalidTransition",
                "detail": "Cannot complete a lead with status 'assigned'",
                "status_code": 409
            }
        }
