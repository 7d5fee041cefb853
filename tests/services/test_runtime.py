"""
Process start-up and the caller-owned unit of work.

Verifies that ``start`` wires the engine from configuration and that work
done inside ``session_scope`` is committed on success and rolled back on
error.
"""

from uuid import uuid4

import pytest

from clm_config.schema import DatabaseSettings, EngineConfig
from clm_kernel.db.engine import drop_tables, get_engine, reset_engine, session_scope
from clm_kernel.exceptions import ContractNotFoundError
from clm_services.contract_service import ContractService
from clm_services.runtime import start


@pytest.fixture
def started(database_url):
    config = start(
        EngineConfig(database=DatabaseSettings(url=database_url, pool_size=2)),
        create_schema=True,
    )
    yield config
    drop_tables()
    reset_engine()


class TestStart:
    def test_engine_uses_configured_url(self, started, database_url):
        assert get_engine().url.render_as_string(hide_password=False) == database_url

    def test_returns_applied_config(self, started):
        assert started.database.pool_size == 2


class TestSessionScope:
    def test_commit_on_success(self, started):
        org_id, actor_id = uuid4(), uuid4()
        with session_scope() as session:
            contract = ContractService(session).create(org_id, actor_id, "Reseller Agreement")

        with session_scope() as session:
            loaded = ContractService(session).get(contract.id, org_id)
        assert loaded.title == "Reseller Agreement"

    def test_rollback_on_error(self, started):
        org_id, actor_id = uuid4(), uuid4()
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                contract = ContractService(session).create(org_id, actor_id, "Abandoned")
                raise RuntimeError("caller aborted")

        with session_scope() as session:
            with pytest.raises(ContractNotFoundError):
                ContractService(session).get(contract.id, org_id)
