"""Tenant-scoped contract loading shared by the services."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from clm_kernel.exceptions import ContractNotFoundError
from clm_kernel.models.contract import ContractModel


def load_contract(
    session: Session,
    contract_id: UUID,
    organization_id: UUID,
    for_update: bool = False,
) -> ContractModel:
    """Load a contract owned by ``organization_id``.

    With ``for_update`` the row is locked (``SELECT ... FOR UPDATE`` on
    PostgreSQL) and the identity-map copy is refreshed from the database so
    a stale in-session object never drives a decision.

    Raises:
        ContractNotFoundError: unknown id, or the contract belongs to
            another organization.
    """
    stmt = select(ContractModel).where(
        ContractModel.id == contract_id,
        ContractModel.organization_id == organization_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    model = session.execute(stmt).scalar_one_or_none()
    if model is None:
        raise ContractNotFoundError(str(contract_id))
    return model
