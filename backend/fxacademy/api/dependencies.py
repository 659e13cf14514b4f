"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers. Services are
built per request on the request's database session; gateway clients
are closed when the request finishes.

Tests replace these with app.dependency_overrides.
"""

import logging
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from fxacademy.config.settings import Settings, get_settings
from fxacademy.database.session import get_db_session
from fxacademy.entitlements.service import EntitlementService
from fxacademy.integrations.paystack.client import PaystackClient, get_paystack_client
from fxacademy.integrations.supabase.auth_client import SupabaseAuthClient
from fxacademy.services.billing_service import BillingService
from fxacademy.services.catalog_service import CatalogService
from fxacademy.services.profile_service import ProfileService
from fxacademy.services.role_service import RoleService
from fxacademy.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


async def get_gateway(
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[PaystackClient, None]:
    """Paystack client for the duration of one request."""
    if not settings.paystack_secret_key:
        logger.error("PAYSTACK_SECRET_KEY not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "payments_unavailable", "message": "Payments are not configured"},
        )
    client = get_paystack_client(settings.paystack_secret_key, settings.paystack_base_url)
    try:
        yield client
    finally:
        await client.close()


async def get_auth_client(
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[SupabaseAuthClient, None]:
    """Identity provider client for the duration of one request."""
    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.error("SUPABASE_URL or SUPABASE_ANON_KEY not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "auth_unavailable", "message": "Authentication is not configured"},
        )
    client = SupabaseAuthClient(settings.supabase_url, settings.supabase_anon_key)
    try:
        yield client
    finally:
        await client.close()


def get_subscription_service(
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> SubscriptionService:
    return SubscriptionService(db, renewal_window=timedelta(days=settings.renewal_window_days))


def get_entitlement_service(
    db: Session = Depends(get_db_session),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> EntitlementService:
    return EntitlementService(db, subscriptions)


def get_billing_service(
    db: Session = Depends(get_db_session),
    gateway: PaystackClient = Depends(get_gateway),
    settings: Settings = Depends(get_app_settings),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> BillingService:
    return BillingService(db, gateway, settings, subscriptions)


def get_profile_service(
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> ProfileService:
    return ProfileService(db, settings)


def get_role_service(db: Session = Depends(get_db_session)) -> RoleService:
    return RoleService(db)


def get_catalog_service(db: Session = Depends(get_db_session)) -> CatalogService:
    return CatalogService(db)
