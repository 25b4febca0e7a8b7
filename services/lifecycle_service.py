"""
Lifecycle service: applies lead transitions and their side effects.

Process for every transition:
1. Load the lead (lock-free read)
2. Run the pure transition from domain/lifecycle.py (role, state, ownership
   and field checks; commission computed on completion)
3. Persist with a compare-and-set on `version`; a lost race raises Conflict
4. Append an audit event
5. Queue notifications (best effort; never fails or rolls back the transition)

The acting user is always passed in explicitly, resolved server side from the
bearer token. Nothing here trusts a client-supplied role.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from domain import lifecycle
from domain.errors import Forbidden, LeadLifecycleError, NotFound, ValidationError
from domain.lead import Lead, LeadImage, LeadStatus
from domain.lifecycle import LeadAction, LeadEvent, RejectionPolicy
from domain.time import utc_now
from domain.update import Update
from domain.user import Agency, User
from repositories.lead_repository import LeadRepository
from repositories.user_repository import UserRepository
from services.commission_service import CommissionCalculator
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

ACTIONABLE_STATUSES: Tuple[LeadStatus, ...] = (LeadStatus.ASSIGNED, LeadStatus.IN_PROGRESS)


@dataclass(frozen=True, slots=True)
class LeadSubmission:
    """A spotter's report of a property for sale."""

    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: Optional[str] = None
    suburb: Optional[str] = None
    notes_text: str = ""
    images: Sequence[LeadImage] = field(default_factory=tuple)
    requested_agent_id: Optional[str] = None
    agency_id: Optional[str] = None


def _money(amount: Optional[Decimal]) -> str:
    return "" if amount is None else f"{amount:,.2f}"


def _lead_name(lead: Lead) -> str:
    name = f"{lead.first_name} {lead.last_name}".strip()
    return name or f"lead #{lead.id}"


class LeadLifecycleEngine:
    def __init__(
        self,
        leads: LeadRepository,
        users: UserRepository,
        notifications: NotificationDispatcher,
        commission: Optional[CommissionCalculator] = None,
        *,
        rejection_policy: RejectionPolicy = RejectionPolicy.CLOSE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._leads = leads
        self._users = users
        self._notifications = notifications
        self._commission = commission or CommissionCalculator()
        self._rejection_policy = rejection_policy
        self._clock = clock

    @property
    def rejection_policy(self) -> RejectionPolicy:
        return self._rejection_policy

    # =========================================================================
    # READS
    # =========================================================================

    def get_lead(self, lead_id: int) -> Lead:
        lead = self._leads.get(lead_id)
        if lead is None:
            raise NotFound(f"Lead not found: {lead_id}")
        return lead

    def get_lead_for(self, actor: User, lead_id: int) -> Lead:
        """Fetch a lead visible to the actor: its spotter, its agent, or its agency's admins."""

        lead = self.get_lead(lead_id)
        if not self.can_view(actor, lead):
            raise Forbidden("You do not have access to this lead")
        return lead

    @staticmethod
    def can_view(actor: User, lead: Lead) -> bool:
        return (
            actor.id == lead.spotter_id
            or lead.is_assigned_to(actor.id)
            or actor.administers(lead.agency_id)
        )

    def history(self, actor: User, lead_id: int) -> List[LeadEvent]:
        self.get_lead_for(actor, lead_id)
        return self._leads.list_events(lead_id)

    # Listing is restricted to the owner of the collection: the spotter or
    # agent themselves, or an admin of the agency concerned.

    def check_spotter_access(self, actor: User, spotter_id: str) -> None:
        if actor.id != spotter_id:
            raise Forbidden("You can only view your own leads")

    def check_agency_access(self, actor: User, agency_id: str) -> None:
        if not actor.administers(agency_id):
            raise Forbidden("Only admins of this agency can view its leads")

    def check_agent_access(self, actor: User, agent_id: str) -> None:
        if actor.id == agent_id:
            return
        agent = self._users.get_user(agent_id)
        if agent is None or not agent.is_agent():
            raise NotFound(f"Agent not found: {agent_id}")
        if not actor.administers(agent.agency_id or ""):
            raise Forbidden("You can only view leads of agents in your agency")

    def list_spotter_leads(self, actor: User, spotter_id: str) -> List[Lead]:
        self.check_spotter_access(actor, spotter_id)
        return self._leads.list_by_spotter(spotter_id)

    def list_agency_leads(self, actor: User, agency_id: str) -> List[Lead]:
        self.check_agency_access(actor, agency_id)
        return self._leads.list_by_agency(agency_id)

    def list_agent_leads(self, actor: User, agent_id: str, show_all: bool = False) -> List[Lead]:
        """Leads held by the agent; only actionable ones unless show_all."""

        self.check_agent_access(actor, agent_id)
        statuses: Optional[Iterable[LeadStatus]] = None if show_all else ACTIONABLE_STATUSES
        return self._leads.list_by_agent(agent_id, statuses)

    def get_agency_for(self, actor: User, agency_id: str) -> Agency:
        agency = self._users.get_agency(agency_id)
        if agency is None:
            raise NotFound(f"Agency not found: {agency_id}")
        self.check_agency_access(actor, agency_id)
        return agency

    def list_agency_agents(self, actor: User, agency_id: str) -> List[User]:
        """The agency's agents, for picking assignment targets."""

        self.get_agency_for(actor, agency_id)
        return self._users.list_agents(agency_id)

    # =========================================================================
    # AGENT MANAGEMENT
    # =========================================================================

    def deactivate_agent(self, actor: User, agent_id: str) -> User:
        """
        Stop an agent from receiving assignments or acting on leads.

        Leads already assigned to the agent keep their assignment; an admin can
        reassign the ones still awaiting acceptance.
        """
        return self._set_agent_active(actor, agent_id, False)

    def reactivate_agent(self, actor: User, agent_id: str) -> User:
        return self._set_agent_active(actor, agent_id, True)

    def _set_agent_active(self, actor: User, agent_id: str, is_active: bool) -> User:
        agent = self._users.get_user(agent_id)
        if agent is None or not agent.is_agent():
            raise NotFound(f"Agent not found: {agent_id}")
        if not actor.administers(agent.agency_id or ""):
            raise Forbidden("Only admins of the agent's agency can manage this agent")
        if agent.is_active == is_active:
            return agent

        updated = self._users.set_active(agent_id, is_active)
        logger.info(
            "Agent %s %s by admin=%s", agent_id, "reactivated" if is_active else "deactivated", actor.id
        )
        return updated

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit_lead(self, actor: User, submission: LeadSubmission) -> Lead:
        """
        Create a `new` lead for a spotter.

        The owning agency is the requested agent's agency when one is named,
        otherwise the agency the spotter picked.
        """

        if not actor.is_spotter() or not actor.is_active:
            raise Forbidden("Only active spotters may submit leads")

        problems: Dict[str, str] = {}
        if not submission.first_name.strip():
            problems["first_name"] = "This field may not be blank."
        if not submission.last_name.strip():
            problems["last_name"] = "This field may not be blank."
        if not (submission.email or "").strip() and not (submission.phone or "").strip():
            problems["phone"] = "Provide a phone number or an email address."

        agency_id = submission.agency_id
        if submission.requested_agent_id:
            agent = self._users.get_user(submission.requested_agent_id)
            if agent is None or not agent.is_agent():
                problems["requested_agent_id"] = "Agent not found."
            elif agency_id and agency_id != agent.agency_id:
                problems["agency_id"] = "Requested agent belongs to a different agency."
            else:
                agency_id = agent.agency_id
        if not agency_id:
            problems.setdefault("agency_id", "Choose an agency or a requested agent.")
        elif "agency_id" not in problems and self._users.get_agency(agency_id) is None:
            problems["agency_id"] = "Agency not found."
        if problems or agency_id is None:
            raise ValidationError("Invalid lead submission", problems)

        lead = self._leads.insert(
            Lead(
                id=0,
                spotter_id=actor.id,
                agency_id=agency_id,
                created_at=self._clock(),
                requested_agent_id=submission.requested_agent_id or None,
                first_name=submission.first_name.strip(),
                last_name=submission.last_name.strip(),
                email=(submission.email or "").strip() or None,
                phone=(submission.phone or "").strip() or None,
                street_address=submission.street_address,
                suburb=submission.suburb,
                notes_text=submission.notes_text or "",
                images=tuple(submission.images),
            )
        )
        logger.info("Lead %s submitted by spotter=%s for agency=%s", lead.id, actor.id, agency_id)
        return lead

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def assign(self, actor: User, lead_id: int, agent_id: str, notes: Optional[str] = None) -> Lead:
        """Assign or reassign a lead to an agent of the admin's agency."""

        with self._logged(LeadAction.ASSIGN, actor, lead_id):
            before = self.get_lead(lead_id)
            lifecycle.authorize(before, actor, LeadAction.ASSIGN, self._rejection_policy)

            agent = self._users.get_user(agent_id) if agent_id else None
            if agent is None:
                raise NotFound(f"Agent not found: {agent_id}")

            after = lifecycle.assign(before, actor, agent, at=self._clock())
            saved = self._commit(before, after, LeadAction.ASSIGN, actor, notes)

        self._notify(
            [agent.id],
            "lead_assigned",
            self._context(saved, notes=notes, admin_name=actor.full_name, agent_name=agent.full_name),
            saved.id,
        )
        return saved

    def respond(self, actor: User, lead_id: int, action: str, notes: Optional[str] = None) -> Lead:
        """Accept or reject an assignment."""

        normalized = (action or "").strip().lower()
        if normalized == LeadAction.ACCEPT.value:
            return self.accept(actor, lead_id, notes)
        if normalized == LeadAction.REJECT.value:
            return self.reject(actor, lead_id, notes)
        raise ValidationError.for_field("action", "Must be 'accept' or 'reject'.")

    def accept(self, actor: User, lead_id: int, notes: Optional[str] = None) -> Lead:
        with self._logged(LeadAction.ACCEPT, actor, lead_id):
            before = self.get_lead(lead_id)
            after = lifecycle.accept(before, actor, at=self._clock())
            saved = self._commit(before, after, LeadAction.ACCEPT, actor, notes)

        self._notify(
            [saved.spotter_id],
            "lead_accepted",
            self._context(saved, notes=notes, agent_name=actor.full_name),
            saved.id,
        )
        return saved

    def reject(self, actor: User, lead_id: int, notes: Optional[str] = None) -> Lead:
        with self._logged(LeadAction.REJECT, actor, lead_id):
            before = self.get_lead(lead_id)
            after = lifecycle.reject(
                before, actor, at=self._clock(), rejection_policy=self._rejection_policy
            )
            saved = self._commit(before, after, LeadAction.REJECT, actor, notes)

        self._notify(
            self._agency_admin_ids(saved.agency_id),
            "lead_rejected",
            self._context(saved, notes=notes, agent_name=actor.full_name),
            saved.id,
        )
        return saved

    def complete(self, actor: User, lead_id: int, final_price: Any, notes: Optional[str] = None) -> Lead:
        """Close a sale; the commission calculator runs once, before the lead is marked completed."""

        with self._logged(LeadAction.COMPLETE, actor, lead_id):
            before = self.get_lead(lead_id)
            after = lifecycle.complete(before, actor, final_price, self._commission.compute, at=self._clock())
            saved = self._commit(before, after, LeadAction.COMPLETE, actor, notes)

        self._notify(
            [saved.spotter_id],
            "lead_completed",
            self._context(
                saved,
                notes=notes,
                agent_name=actor.full_name,
                final_price=_money(saved.final_price),
                spotter_commission_amount=_money(saved.spotter_commission_amount),
                agreed_commission_amount=_money(saved.agreed_commission_amount),
            ),
            saved.id,
        )
        return saved

    def fail(self, actor: User, lead_id: int, reason: Optional[str], notes: Optional[str] = None) -> Lead:
        with self._logged(LeadAction.FAIL, actor, lead_id):
            before = self.get_lead(lead_id)
            after = lifecycle.fail(before, actor, reason, at=self._clock())
            saved = self._commit(before, after, LeadAction.FAIL, actor, notes)

        self._notify(
            self._agency_admin_ids(saved.agency_id),
            "lead_failed",
            self._context(saved, notes=notes, agent_name=actor.full_name, reason=saved.failure_reason),
            saved.id,
        )
        return saved

    # =========================================================================
    # EXPLICIT NOTIFICATION
    # =========================================================================

    def notify(
        self,
        actor: User,
        lead_id: int,
        template_name: str,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> Update:
        """
        Send a templated update about a lead to its spotter.

        Only the lead's agency admins and its assigned agent may trigger this.
        Unlike lifecycle notifications, template errors are raised to the caller.
        """

        lead = self.get_lead(lead_id)
        if not (actor.administers(lead.agency_id) or lead.is_assigned_to(actor.id)):
            raise Forbidden("Only the agency admin or the assigned agent may notify about this lead")

        context = self._context(lead)
        context.update(variables or {})
        context["lead_id"] = lead.id
        update = self._notifications.send(lead.spotter_id, template_name, context, lead_id=lead.id)
        logger.info("User %s sent '%s' about lead %s", actor.id, template_name, lead.id)
        return update

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _commit(
        self,
        before: Lead,
        after: Lead,
        action: LeadAction,
        actor: User,
        notes: Optional[str],
    ) -> Lead:
        saved = self._leads.save(after, expected_version=before.version)
        logger.info(
            "Lead %s %s by user=%s: %s -> %s (version %d)",
            saved.id,
            action.value,
            actor.id,
            before.status.value,
            saved.status.value,
            saved.version,
        )
        try:
            self._leads.append_event(lifecycle.event_for(before, saved, action, actor, notes))
        except Exception:
            # The transition is already committed; a missing audit row must not undo it.
            logger.exception("Failed to record %s event for lead %s", action.value, saved.id)
        return saved

    def _logged(self, action: LeadAction, actor: User, lead_id: int) -> "_RejectedActionLog":
        return _RejectedActionLog(action, actor, lead_id)

    def _agency_admin_ids(self, agency_id: str) -> List[str]:
        try:
            return [admin.id for admin in self._users.list_agency_admins(agency_id) if admin.is_active]
        except Exception:
            logger.exception("Could not load admins of agency %s for notification", agency_id)
            return []

    @staticmethod
    def _context(lead: Lead, **extra: Any) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            "lead_id": lead.id,
            "lead_name": _lead_name(lead),
            "status": lead.status.label,
        }
        context.update({k: ("" if v is None else v) for k, v in extra.items()})
        return context

    def _notify(
        self,
        recipient_ids: Iterable[str],
        template_name: str,
        variables: Mapping[str, Any],
        lead_id: int,
    ) -> None:
        for recipient_id in recipient_ids:
            try:
                self._notifications.send(recipient_id, template_name, variables, lead_id=lead_id)
            except Exception:
                logger.exception(
                    "Could not queue '%s' notification for user=%s on lead %s",
                    template_name,
                    recipient_id,
                    lead_id,
                )


class _RejectedActionLog:
    """Context manager that logs lifecycle errors at WARNING and re-raises them."""

    def __init__(self, action: LeadAction, actor: User, lead_id: int) -> None:
        self._action = action
        self._actor = actor
        self._lead_id = lead_id

    def __enter__(self) -> "_RejectedActionLog":
        return self

    def __exit__(self, exc_type: Any, exc: Optional[BaseException], tb: Any) -> bool:
        if isinstance(exc, LeadLifecycleError):
            logger.warning(
                "Rejected %s on lead %s by user=%s: %s: %s",
                self._action.value,
                self._lead_id,
                self._actor.id,
                type(exc).__name__,
                exc,
            )
        return False


__all__ = ["ACTIONABLE_STATUSES", "LeadLifecycleEngine", "LeadSubmission"]
