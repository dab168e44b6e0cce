"""
TenantModel: Abstract base class for tenant-scoped models.

Journey maps and their templates are owned by a tenant. Inheriting from
TenantModel instead of db.Model adds:
  - tenant_id column with index (nullable: single-tenant installs leave it empty)
  - query_for_tenant(tenant_id) classmethod
  - Composite index helper
"""

from app.models import db


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(db.Integer, nullable=True, index=True)

    @classmethod
    def query_for_tenant(cls, tenant_id):
        """Return a query filtered by tenant_id (all rows when tenant_id is None)."""
        if tenant_id is None:
            return cls.query
        return cls.query.filter_by(tenant_id=tenant_id)

    @classmethod
    def tenant_composite_index(cls, table_name, *extra_cols):
        """Build a (tenant_id, ...) composite index for ``__table_args__``."""
        name = f"ix_{table_name}_tenant_{'_'.join(extra_cols)}"
        cols = ("tenant_id",) + extra_cols
        return db.Index(name, *cols)
