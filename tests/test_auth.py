from datetime import timedelta

import pytest

from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.models.user import UserRole
from app.services.auth import create_access_token, decode_access_token
from app.services.permissions import Permission, PermissionResolver


def test_missing_token(client):
    response = client.get("/api/time/entries")
    assert response.status_code == 401


def test_malformed_token(client):
    response = client.get("/api/time/entries", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_expired_token(client, employee_user):
    token = create_access_token({"sub": employee_user.email}, expires_delta=timedelta(minutes=-5))
    response = client.get("/api/time/entries", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_unknown_user(client):
    token = create_access_token({"sub": "ghost@nowhere.com"})
    response = client.get("/api/time/entries", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_inactive_user(client, db_session, employee_user, auth_headers):
    employee_user.is_active = False
    db_session.commit()
    response = client.get("/api/time/entries", headers=auth_headers(employee_user))
    assert response.status_code == 403


def test_user_without_organization(client, db_session, employee_user, auth_headers):
    employee_user.organization_id = None
    db_session.commit()
    response = client.get("/api/time/entries", headers=auth_headers(employee_user))
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_token_type_is_checked():
    token = create_access_token({"sub": "someone@alphacorp.com"})
    assert decode_access_token(token)["type"] == "access"

    from jose import jwt
    from app.core.config import settings
    refresh = jwt.encode({"sub": "someone@alphacorp.com", "type": "refresh"}, settings.secret_key, algorithm=settings.jwt_algorithm)
    with pytest.raises(AuthenticationError):
        decode_access_token(refresh)


def test_resolver_checks_tenant_and_role(make_user, employee_user, manager_user):
    resolver = PermissionResolver()
    org_id = employee_user.organization_id
    assert resolver.resolve_tenant(employee_user) == org_id

    assert resolver.has_permission(employee_user, org_id, Permission.OVERTIME_VIEW)
    assert not resolver.has_permission(employee_user, org_id, Permission.TIME_APPROVE)
    assert resolver.has_permission(manager_user, org_id, Permission.TIME_APPROVE)
    assert not resolver.has_permission(manager_user, org_id + 1, Permission.TIME_APPROVE)
    assert not resolver.has_permission(None, org_id, Permission.OVERTIME_VIEW)

    with pytest.raises(AccessDeniedError):
        resolver.ensure_permission(employee_user, org_id, Permission.LEAVE_MANAGE_TYPES)

    admin = make_user(UserRole.SUPER_ADMIN, "root")
    assert resolver.has_permission(admin, org_id, Permission.OVERTIME_MANAGE_RULES)
