"""ADFLOW — Tenant-Scoped Storage Access.

Every read and write of tenant-owned rows goes through a ``TenantScope``.
The tenant filter is applied here, once, so no call site can forget it.
A row that exists but belongs to another tenant is reported exactly like a
row that does not exist.
"""

import re
from typing import Any, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import update
from sqlmodel import Session, SQLModel, select

from adflow.core.errors import NotFound
from adflow.models.tenant_models import Tenant

M = TypeVar("M", bound=SQLModel)


def _entity_label(model: Type[SQLModel]) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", model.__name__).lower()


def all_tenant_ids(session: Session) -> List[int]:
    """IDs of every tenant, for system jobs that then open one scope each."""
    return list(session.exec(select(Tenant.id).order_by(Tenant.id)).all())


class TenantScope:
    """A database session bound to exactly one tenant."""

    def __init__(self, session: Session, tenant_id: int):
        tenant = session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFound("tenant", tenant_id)
        self.session = session
        self.tenant = tenant
        self.tenant_id: int = tenant.id

    def __repr__(self) -> str:
        return f"<TenantScope tenant={self.tenant_id}>"

    # ── Reads ──

    def select(self, model: Type[M]):
        return select(model).where(model.tenant_id == self.tenant_id)

    def get(self, model: Type[M], entity_id: Any) -> M:
        row = self.session.exec(self.select(model).where(model.id == entity_id)).first()
        if row is None:
            raise NotFound(_entity_label(model), entity_id)
        return row

    def find(self, model: Type[M], entity_id: Any) -> Optional[M]:
        try:
            return self.get(model, entity_id)
        except NotFound:
            return None

    def list(
        self,
        model: Type[M],
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
    ) -> List[M]:
        query = self.select(model)
        for criterion in criteria:
            query = query.where(criterion)
        if order_by:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.exec(query).all())

    def first(self, model: Type[M], *criteria: Any, order_by: Sequence[Any] = ()) -> Optional[M]:
        rows = self.list(model, *criteria, order_by=order_by, limit=1)
        return rows[0] if rows else None

    # ── Writes ──

    def _check_owner(self, entity: SQLModel) -> None:
        owner = getattr(entity, "tenant_id", None)
        if owner is not None and owner != self.tenant_id:
            raise NotFound(_entity_label(type(entity)), getattr(entity, "id", None))

    def add(self, entity: M) -> M:
        self._check_owner(entity)
        entity.tenant_id = self.tenant_id
        self.session.add(entity)
        return entity

    def delete(self, entity: SQLModel) -> None:
        self._check_owner(entity)
        self.session.delete(entity)

    def update_where(self, model: Type[M], entity_id: Any, *conditions: Any, **values: Any) -> bool:
        """Compare-and-swap UPDATE on one row of this tenant.

        Returns True when the row matched ``conditions`` and was changed.
        """
        stmt = (
            update(model)
            .where(model.tenant_id == self.tenant_id, model.id == entity_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1
