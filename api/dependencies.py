"""
Service wiring and request dependencies.

`build_container` assembles repositories and services for the configured
backend. The API resolves it once through `get_container`; tests replace that
dependency with a container built around in-memory repositories.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from api.errors import to_http_exception
from config import Settings, get_settings
from domain.errors import StoreError
from domain.user import User
from repositories.lead_repository import LeadRepository
from repositories.update_repository import UpdateRepository
from repositories.user_repository import UserRepository
from services.aggregation_service import AggregationService
from services.commission_service import CommissionCalculator, PercentageCommissionPolicy
from services.lifecycle_service import LeadLifecycleEngine
from services.notification_service import NotificationChannel, NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContainer:
    users: UserRepository
    engine: LeadLifecycleEngine
    aggregation: AggregationService
    notifications: NotificationDispatcher


def build_container(
    settings: Settings,
    *,
    leads: Optional[LeadRepository] = None,
    users: Optional[UserRepository] = None,
    updates: Optional[UpdateRepository] = None,
    channel: Optional[NotificationChannel] = None,
) -> ServiceContainer:
    """
    Build the service graph.

    Repositories not passed in are created for `settings.lead_store_backend`.
    """

    if leads is None or users is None or updates is None:
        if settings.uses_supabase:
            from repositories.client import get_supabase
            from repositories.lead_repository import SupabaseLeadRepository
            from repositories.update_repository import SupabaseUpdateRepository
            from repositories.user_repository import SupabaseUserRepository

            client = get_supabase()
            leads = leads or SupabaseLeadRepository(client)
            users = users or SupabaseUserRepository(client)
            updates = updates or SupabaseUpdateRepository(client)
        else:
            from repositories.memory import (
                InMemoryLeadRepository,
                InMemoryUpdateRepository,
                InMemoryUserRepository,
            )

            leads = leads or InMemoryLeadRepository()
            users = users or InMemoryUserRepository()
            updates = updates or InMemoryUpdateRepository()

    notifications = NotificationDispatcher(
        updates,
        channel,
        max_attempts=settings.notification_max_attempts,
        retry_base_delay=settings.notification_retry_base_delay,
        workers=settings.notification_workers,
    )
    calculator = CommissionCalculator(
        PercentageCommissionPolicy(
            agency_rate=settings.commission_agency_rate,
            spotter_share=settings.commission_spotter_share,
        )
    )
    engine = LeadLifecycleEngine(
        leads,
        users,
        notifications,
        calculator,
        rejection_policy=settings.rejection_policy,
    )
    logger.info(
        "Services ready (backend=%s, rejection_policy=%s, notification_workers=%d)",
        settings.lead_store_backend,
        settings.rejection_policy.value,
        settings.notification_workers,
    )
    return ServiceContainer(
        users=users,
        engine=engine,
        aggregation=AggregationService(leads),
        notifications=notifications,
    )


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    return build_container(get_settings())


def get_current_user(
    authorization: Optional[str] = Header(None),
    container: ServiceContainer = Depends(get_container),
) -> User:
    """Resolve `Authorization: Bearer <token>` to a User, or fail with 401."""

    unauthorized = HTTPException(
        status_code=401,
        detail={"error": "Unauthorized", "detail": "Valid bearer token required", "status_code": 401},
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not authorization:
        raise unauthorized

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise unauthorized

    try:
        user = container.users.get_user_by_token(token.strip())
    except StoreError as e:
        raise to_http_exception(e)
    if user is None:
        raise unauthorized
    return user


__all__ = ["ServiceContainer", "build_container", "get_container", "get_current_user"]
