"""Who is calling: tenant, actor and role for every dispatch route."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dispatch_dashboard.core.config import Settings, get_settings


security = HTTPBearer(auto_error=False)

SUPPORTED_ROLES = ("dispatcher", "viewer", "admin")
WRITE_ROLES = ("dispatcher", "admin")


@dataclass
class TenantContext:
    tenant_id: str
    authenticated: bool
    actor: str
    role: str

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES


def _role(settings: Settings, header: str | None) -> str:
    role = (header or settings.default_role or "dispatcher").strip().lower()
    if role not in SUPPORTED_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported role '{role}'. Expected one of: {list(SUPPORTED_ROLES)}",
        )
    return role


def _tenant_from_token(settings: Settings, credentials: HTTPAuthorizationCredentials | None) -> str:
    token = (credentials.credentials if credentials else "").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Bearer token required")
    tenant_id = settings.tenant_token_map().get(token)
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bearer token")
    return tenant_id


def get_tenant_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
    x_actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
    x_actor: str | None = Header(default=None, alias="X-Actor"),
) -> TenantContext:
    """
    Resolve the calling tenant.

    With auth disabled the X-Tenant-ID header (or the configured default
    tenant) is trusted. With auth enabled the bearer token decides the tenant
    and a conflicting X-Tenant-ID is refused.
    """
    settings = get_settings()
    requested = (x_tenant_id or "").strip()
    role = _role(settings, x_actor_role)
    actor = (x_actor or "").strip() or settings.default_actor

    if not settings.auth_enabled:
        tenant_id = requested or (settings.default_tenant_id or "demo").strip() or "demo"
        return TenantContext(tenant_id=tenant_id, authenticated=False, actor=actor, role=role)

    tenant_id = _tenant_from_token(settings, credentials)
    if requested and requested != tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token tenant mismatch")
    return TenantContext(tenant_id=tenant_id, authenticated=True, actor=actor, role=role)


def require_roles(*allowed_roles: str):
    """Dependency factory that enforces role-based access control."""
    allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not allowed:
        raise ValueError("At least one role is required")

    def _guard(context: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        if context.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{context.role}' may not change dispatch records",
            )
        return context

    return _guard


require_writer = require_roles(*WRITE_ROLES)
