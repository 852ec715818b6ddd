"""
Request-scoped dependencies shared by the routers.

Authentication happens upstream; the gateway forwards the tenant
and the acting user as headers.
"""

from fastapi import Header, HTTPException

from gst_billing.errors import BillingError


def get_tenant_id(x_tenant_id: int = Header(...)) -> int:
    """Tenant (company) the request acts on, from X-Tenant-ID."""
    if x_tenant_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid X-Tenant-ID header")
    return x_tenant_id


def get_actor(x_user_id: str | None = Header(default=None)) -> str | None:
    """Acting user from X-User-ID, recorded on finalize, payments and audit rows."""
    return x_user_id


def http_error(e: BillingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())
