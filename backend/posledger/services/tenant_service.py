"""
Tenant scoping helpers.

Every id that arrives from a caller (outlet, transaction, bill) is resolved
against the caller's tenant. A row owned by a different tenant is reported
exactly like a missing row so existence is not leaked across tenants.
"""

from ..extensions import db
from ..errors import NotFoundError
from ..models import Outlet, Tenant


def require_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return tenant


def require_outlet_in_tenant(outlet_id: int, tenant_id: int) -> Outlet:
    """
    Validate that an outlet belongs to the specified tenant.

    Raises:
        NotFoundError if the outlet doesn't exist or belongs to another tenant
    """
    outlet = db.session.query(Outlet).filter_by(id=outlet_id).first()
    if outlet is None or outlet.tenant_id != tenant_id:
        raise NotFoundError(f"Outlet {outlet_id} not found", details={"outlet_id": outlet_id})
    return outlet


def scoped_query(model, tenant_id: int):
    """Query for a tenant-owned model filtered to one tenant."""
    return db.session.query(model).filter(model.tenant_id == tenant_id)
