"""
Tests for route guard decisions and their HTTP rendering.

Tests cover:
- Login redirect with a preserved return path
- Onboarding gate (skipped for admin areas)
- Role mismatch redirects to the caller's own landing page
- Permission denial and paywall offers
- Frontend route table
- decision_response status codes
- Guard decorators
"""

import json
from unittest.mock import MagicMock

import pytest

from fxacademy.constants.permissions import Permission, Role
from fxacademy.entitlements.models import EntitlementDecision, EntitlementReason, ProtectedResource, ResourceScope
from fxacademy.platform.guards import (
    AUTHENTICATED,
    GuardDecision,
    GuardOutcome,
    GuardReason,
    RouteRequirement,
    evaluate_access,
    login_redirect,
    post_login_redirect,
    requirement_for_path,
)
from fxacademy.platform.rbac import (
    decision_response,
    require_access,
    require_login,
    require_permission,
    require_role,
)
from fxacademy.platform.request_context import RequestContext


def ctx(role="student", onboarded=True):
    if onboarded:
        return RequestContext(
            user_id="user-1",
            email="user@academy.test",
            role=role,
            first_name="Kofi",
            last_name="Boateng",
            country="Ghana",
            has_profile=True,
        )
    return RequestContext(user_id="user-1", email="user@academy.test", role=role)


def course_denied():
    resource = ProtectedResource(
        scope=ResourceScope.COURSE,
        resource_id="course-9",
        title="Risk and Psychology",
        price_minor=7500,
        currency="USD",
    )
    return EntitlementDecision(False, EntitlementReason.NO_COURSE_PAYMENT, resource)


class TestLoginRedirect:

    def test_anonymous_redirected_to_login_with_next(self):
        decision = evaluate_access(None, target_path="/student/courses")
        assert decision.outcome == GuardOutcome.REDIRECT
        assert decision.reason == GuardReason.AUTHENTICATION_REQUIRED
        assert decision.target == "/login?next=/student/courses"

    def test_next_is_url_encoded(self):
        assert login_redirect("/student/courses?level=advanced") == "/login?next=/student/courses%3Flevel%3Dadvanced"

    @pytest.mark.parametrize("path", ["//evil.example", "https://evil.example", "", None, "/login"])
    def test_unsafe_or_pointless_next_dropped(self, path):
        assert login_redirect(path) == "/login"


class TestOnboardingGate:

    def test_incomplete_student_sent_to_onboarding(self):
        decision = evaluate_access(ctx(onboarded=False), target_path="/student/dashboard")
        assert decision.outcome == GuardOutcome.REDIRECT
        assert decision.target == "/onboarding"
        assert decision.reason == GuardReason.ONBOARDING_REQUIRED

    def test_onboarding_page_itself_allowed(self):
        decision = evaluate_access(ctx(onboarded=False), target_path="/onboarding")
        assert decision.allowed

    def test_incomplete_admin_reaches_admin_area(self):
        requirement = requirement_for_path("/admin/overview")
        decision = evaluate_access(ctx(Role.ADMIN.value, onboarded=False), requirement, "/admin/overview")
        assert decision.allowed

    def test_incomplete_owner_reaches_owner_area(self):
        requirement = requirement_for_path("/owner/dashboard")
        decision = evaluate_access(ctx(Role.OWNER.value, onboarded=False), requirement, "/owner/dashboard")
        assert decision.allowed

    @pytest.mark.parametrize("role,permission", [
        (Role.OWNER, Permission.ROLE_ADMIN),
        (Role.ADMIN, Permission.MANAGE_SUBSCRIPTIONS),
    ])
    def test_incomplete_admin_passes_admin_only_permission(self, role, permission):
        requirement = RouteRequirement(required_permissions=(permission,))
        decision = evaluate_access(ctx(role.value, onboarded=False), requirement, "/admin/subscription/override/u-1")
        assert decision.allowed

    def test_shared_permission_still_needs_onboarding(self):
        requirement = RouteRequirement(required_permissions=(Permission.VIEW_COURSES,))
        decision = evaluate_access(ctx(Role.ADMIN.value, onboarded=False), requirement, "/student/courses")
        assert decision.reason == GuardReason.ONBOARDING_REQUIRED

    def test_onboarding_precedes_role_check(self):
        requirement = requirement_for_path("/instructor/overview")
        decision = evaluate_access(ctx(onboarded=False), requirement, "/instructor/overview")
        assert decision.reason == GuardReason.ONBOARDING_REQUIRED


class TestRoleMismatch:

    def test_student_in_owner_area_goes_home(self):
        requirement = requirement_for_path("/owner/dashboard")
        decision = evaluate_access(ctx(), requirement, "/owner/dashboard")
        assert decision.outcome == GuardOutcome.REDIRECT
        assert decision.reason == GuardReason.ROLE_MISMATCH
        assert decision.target == "/student/dashboard"

    def test_content_admin_cannot_open_admin_user_management(self):
        requirement = requirement_for_path("/admin/admin-users")
        decision = evaluate_access(ctx(Role.CONTENT_ADMIN.value), requirement, "/admin/admin-users")
        assert decision.reason == GuardReason.ROLE_MISMATCH
        assert decision.target == "/admin/overview"

    def test_owner_opens_admin_area(self):
        requirement = requirement_for_path("/admin/courses")
        assert evaluate_access(ctx(Role.OWNER.value), requirement, "/admin/courses").allowed


class TestPermissionsAndPaywall:

    def test_missing_permission_denied(self):
        requirement = RouteRequirement(required_permissions=(Permission.ROLE_ADMIN,))
        decision = evaluate_access(ctx(Role.CONTENT_ADMIN.value), requirement, "/owner/users")
        assert decision.outcome == GuardOutcome.DENY
        assert decision.reason == GuardReason.INSUFFICIENT_PERMISSION
        assert decision.target == "/admin/overview"

    def test_any_listed_permission_is_enough(self):
        requirement = RouteRequirement(required_permissions=(Permission.ROLE_ADMIN, Permission.VIEW_FINANCE))
        assert evaluate_access(ctx(Role.FINANCE_ADMIN.value), requirement, "/owner/users").allowed

    def test_unentitled_gets_paywall_offer(self):
        requirement = RouteRequirement(require_entitlement=True)
        decision = evaluate_access(ctx(), requirement, "/student/courses/course-9", entitlement=course_denied())
        assert decision.outcome == GuardOutcome.DENY
        assert decision.reason == GuardReason.PAYMENT_REQUIRED
        offer = decision.paywall.to_dict()
        assert offer["price_minor"] == 7500
        assert offer["checkout"] == {
            "method": "POST",
            "path": "/payments/checkout",
            "body": {"course_id": "course-9"},
        }

    def test_entitlement_required_but_not_evaluated_denies(self):
        requirement = RouteRequirement(require_entitlement=True)
        decision = evaluate_access(ctx(), requirement, "/student/access")
        assert decision.reason == GuardReason.PAYMENT_REQUIRED
        assert decision.paywall is None


class TestPostLoginRedirect:

    def test_incomplete_student_goes_to_onboarding(self):
        assert post_login_redirect(ctx(onboarded=False), "/student/courses") == "/onboarding"

    def test_incomplete_owner_skips_onboarding(self):
        assert post_login_redirect(ctx(Role.OWNER.value, onboarded=False)) == "/owner/dashboard"

    def test_safe_next_honoured(self):
        assert post_login_redirect(ctx(), "/student/courses") == "/student/courses"

    def test_unsafe_next_falls_back_to_landing(self):
        assert post_login_redirect(ctx(Role.INSTRUCTOR.value), "//evil.example") == "/instructor/overview"


class TestRouteTable:

    @pytest.mark.parametrize("path", ["/", "/login", "/pricing", "/administrator", "/students"])
    def test_public_paths(self, path):
        assert requirement_for_path(path) is None

    def test_most_specific_prefix_wins(self):
        requirement = requirement_for_path("/admin/admin-users/42")
        assert set(requirement.required_roles) == {Role.OWNER, Role.SUPER_ADMIN}

    def test_student_area_needs_login_only(self):
        assert requirement_for_path("/student/dashboard") == AUTHENTICATED


class TestDecisionResponse:

    @pytest.mark.parametrize("decision,status_code,code", [
        (GuardDecision.redirect("/login", GuardReason.AUTHENTICATION_REQUIRED), 401, "authentication_required"),
        (GuardDecision.redirect("/onboarding", GuardReason.ONBOARDING_REQUIRED), 403, "onboarding_required"),
        (GuardDecision.redirect("/student/dashboard", GuardReason.ROLE_MISMATCH), 403, "role_mismatch"),
        (GuardDecision.deny(GuardReason.INSUFFICIENT_PERMISSION, target="/admin/overview"), 403, "permission_denied"),
        (GuardDecision.deny(GuardReason.PAYMENT_REQUIRED), 402, "payment_required"),
    ])
    def test_status_and_code(self, decision, status_code, code):
        response = decision_response(decision)
        body = json.loads(response.body)
        assert response.status_code == status_code
        assert body["success"] is False
        assert body["error"]["code"] == code
        if decision.target:
            assert body["error"]["redirect"] == decision.target

    def test_allow_has_no_response(self):
        with pytest.raises(ValueError):
            decision_response(GuardDecision.allow())


def fake_request(path):
    request = MagicMock()
    request.url.path = path
    return request


class TestGuardDecorators:

    @pytest.mark.asyncio
    async def test_allowed_call_reaches_endpoint(self):
        @require_permission(Permission.MANAGE_SUBSCRIPTIONS)
        async def endpoint(request, context=None):
            return "ok"

        result = await endpoint(request=fake_request("/admin/x"), context=ctx(Role.ADMIN.value))
        assert result == "ok"

    @pytest.mark.asyncio
    async def test_denied_call_never_reaches_endpoint(self):
        called = []

        @require_permission(Permission.ROLE_ADMIN)
        async def endpoint(request, context=None):
            called.append(True)

        response = await endpoint(request=fake_request("/owner/users"), context=ctx(Role.CONTENT_ADMIN.value))
        assert response.status_code == 403
        assert called == []

    @pytest.mark.asyncio
    async def test_anonymous_gets_login_redirect(self):
        @require_role(Role.INSTRUCTOR)
        async def endpoint(request, context=None):
            return "ok"

        response = await endpoint(request=fake_request("/instructor/overview"), context=None)
        body = json.loads(response.body)
        assert response.status_code == 401
        assert body["error"]["redirect"] == "/login?next=/instructor/overview"

    @pytest.mark.asyncio
    async def test_require_login_skips_onboarding(self):
        @require_login
        async def endpoint(request, context=None):
            return "ok"

        result = await endpoint(request=fake_request("/users/me"), context=ctx(onboarded=False))
        assert result == "ok"

    @pytest.mark.asyncio
    async def test_missing_context_argument_is_a_programming_error(self):
        @require_login
        async def endpoint(request):
            return "ok"

        with pytest.raises(ValueError):
            await endpoint(request=fake_request("/users/me"))

    def test_entitlement_requirement_rejected_by_decorator(self):
        with pytest.raises(ValueError):
            require_access(RouteRequirement(require_entitlement=True))
