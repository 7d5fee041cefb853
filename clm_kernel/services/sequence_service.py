"""
SequenceService -- gapless counters for version numbers and audit order.

Two kinds of counter live in ``sequence_counters``:

    contract_version:<contract id>   one per contract, numbers its versions
    audit_event                      one global counter, orders the audit chain

Each allocation takes ``SELECT ... FOR UPDATE`` on the counter row, so two
editors saving the same contract queue behind each other instead of both
computing ``max(sequence) + 1``.  Nothing here commits: an allocation made
in a transaction that rolls back is simply never seen.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clm_kernel.logging_config import get_logger
from clm_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    AUDIT_EVENT = "audit_event"
    CONTRACT_VERSION_PREFIX = "contract_version:"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def contract_version_sequence(cls, contract_id: UUID) -> str:
        return f"{cls.CONTRACT_VERSION_PREFIX}{contract_id}"

    def lock(self, sequence_name: str) -> int:
        """
        Take the row lock and return the counter's value without moving it.

        A counter that does not exist yet reads as 0.  The versioning service
        calls this before comparing the editor's ``expected_sequence``, so
        the comparison and the later ``next_value`` see the same number.
        """
        return self._locked_counter(sequence_name).current_value

    def next_value(self, sequence_name: str) -> int:
        """Increment under the row lock and return the new value (>= 1)."""
        counter = self._locked_counter(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def _select_for_update(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _locked_counter(self, sequence_name: str) -> SequenceCounter:
        counter = self._select_for_update(sequence_name)
        if counter is not None:
            return counter

        # First use of this name.  Another session may be inserting the same
        # row; the savepoint keeps a unique-key loss from aborting our work.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            counter = self._select_for_update(sequence_name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter
