"""
Temporal Record Store.

============================================================
PURPOSE
============================================================
Maintains validity-interval versioned facts about validators:
display names (keyed by block height) and group membership (keyed
by epoch number).

For every (network_id, validator_id):
- at most one fact is open (valid_to IS NULL)
- intervals [valid_from, valid_to) never overlap
- intervals are contiguous from the first recorded fact onward

============================================================
WRITE PATH
============================================================
record_fact(network_id, validator_id, value, effective_from)
1. An identical fact (same validator, effective_from and value)
   already exists: return it, write nothing.
2. Close the open fact with valid_from < effective_from by setting
   valid_to = effective_from, but only while it is still open. If
   another writer closed it in the meantime, roll back and start
   over from step 1.
3. Insert the new open fact at effective_from.
Steps 2 and 3 are committed together. A unique violation on
(network_id, validator_id, valid_from) means another writer got
there first: the transaction is rolled back and the stored row is
returned.

============================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Type

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from storage.encoding import decode_text, encode_text
from storage.models.history import (
    TemporalFactMixin,
    ValidatorGroupMembership,
    ValidatorName,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError, TransactionError, ValidationError


def _identity(value: Any) -> Any:
    return value


# =============================================================
# FACT KINDS
# =============================================================

@dataclass(frozen=True)
class FactKind:
    """
    Describes one temporal fact table.

    Attributes:
        name: Short name used in logs
        model: ORM model carrying TemporalFactMixin columns
        value_attr: Model attribute holding the stored value
        encode: Domain value -> stored value
        decode: Stored value -> domain value
    """

    name: str
    model: Type[TemporalFactMixin]
    value_attr: str
    encode: Callable[[Any], Any] = _identity
    decode: Callable[[Any], Any] = _identity


VALIDATOR_NAME = FactKind(
    name="validator_name",
    model=ValidatorName,
    value_attr="encoded_name",
    encode=encode_text,
    decode=decode_text,
)

GROUP_MEMBERSHIP = FactKind(
    name="group_membership",
    model=ValidatorGroupMembership,
    value_attr="validator_group_id",
)


@dataclass(frozen=True)
class TemporalFact:
    """A decoded fact as seen by domain code."""

    id: int
    network_id: int
    validator_id: int
    value: Any
    valid_from: int
    valid_to: Optional[int]

    @property
    def is_open(self) -> bool:
        return self.valid_to is None

    def covers(self, point: int) -> bool:
        """Check whether `point` falls inside [valid_from, valid_to)."""
        if point < self.valid_from:
            return False
        return self.valid_to is None or point < self.valid_to


# =============================================================
# STORE
# =============================================================

class TemporalRecordStore(BaseRepository[Any]):
    """
    Repository for one kind of temporal fact.

    Each successful record_fact() commits its own transaction, so
    callers can skip a failed entity and continue with the rest.
    """

    # Re-evaluations after losing the close to a concurrent writer
    MAX_WRITE_ATTEMPTS = 3

    def __init__(self, session: Session, kind: FactKind) -> None:
        super().__init__(session, kind.model, f"TemporalRecordStore.{kind.name}")
        self._kind = kind

    @property
    def kind(self) -> FactKind:
        return self._kind

    # ---------------------------------------------------------
    # Write
    # ---------------------------------------------------------

    def record_fact(
        self,
        network_id: int,
        validator_id: int,
        value: Any,
        effective_from: int,
    ) -> TemporalFact:
        """
        Record that `value` holds from `effective_from` onward.

        The open fact is closed with a conditional UPDATE (valid_to IS
        NULL). If another writer closed it first, the transaction is
        rolled back and the write is evaluated again against the new
        open fact.

        Args:
            network_id: Network partition
            validator_id: Validator surrogate id
            value: Domain value (display name or group id)
            effective_from: Observed height or epoch

        Returns:
            The stored fact (new, or the existing one on replay/race)

        Raises:
            ValidationError: If effective_from is negative or precedes the
                currently open fact
            StorageUnavailableError: If the database cannot be written
        """
        if effective_from < 0:
            raise ValidationError(
                repository_name=self.repository_name,
                operation="record_fact",
                field="effective_from",
                reason=f"must be non-negative, got {effective_from}",
            )

        stored_value = self._kind.encode(value)

        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            existing = self._row_starting_at(network_id, validator_id, effective_from)
            if existing is not None and getattr(existing, self._kind.value_attr) == stored_value:
                self._logger.debug(
                    f"Fact already recorded | validator_id={validator_id} "
                    f"from={effective_from}"
                )
                return self._to_fact(existing)

            open_row = self._open_row(network_id, validator_id)
            if open_row is not None and open_row.valid_from > effective_from:
                raise ValidationError(
                    repository_name=self.repository_name,
                    operation="record_fact",
                    field="effective_from",
                    reason=(
                        f"{effective_from} precedes open fact starting at "
                        f"{open_row.valid_from} for validator_id={validator_id}"
                    ),
                )

            closes_previous = open_row is not None and open_row.valid_from < effective_from
            if closes_previous and not self._close_row(open_row.id, effective_from):
                self._rollback()
                self._logger.info(
                    f"Open fact closed by a concurrent writer, re-reading | "
                    f"validator_id={validator_id} from={effective_from} attempt={attempt}"
                )
                continue

            row = self._kind.model(
                network_id=network_id,
                validator_id=validator_id,
                valid_from=effective_from,
                valid_to=None,
            )
            setattr(row, self._kind.value_attr, stored_value)

            try:
                self._add(row, "record_fact")
                self._commit("record_fact")
            except DuplicateRecordError:
                winner = self._row_starting_at(network_id, validator_id, effective_from)
                if winner is None:
                    raise
                self._logger.info(
                    f"Concurrent write detected, keeping stored fact | "
                    f"validator_id={validator_id} from={effective_from}"
                )
                return self._to_fact(winner)

            self._logger.info(
                f"Recorded {self._kind.name} | validator_id={validator_id} "
                f"from={effective_from} closed_previous={closes_previous}"
            )
            return self._to_fact(row)

        raise TransactionError(
            repository_name=self.repository_name,
            operation="record_fact",
            phase="close_open_fact",
            original_error=(
                f"open fact for validator_id={validator_id} kept changing "
                f"after {self.MAX_WRITE_ATTEMPTS} attempts"
            ),
        )

    # ---------------------------------------------------------
    # Read
    # ---------------------------------------------------------

    def fact_at(
        self,
        network_id: int,
        validator_id: int,
        point: int,
    ) -> Optional[TemporalFact]:
        """
        Get the fact whose interval contains `point`.

        valid_from is inclusive and valid_to exclusive. If repaired data
        leaves several candidates, the latest valid_from wins.
        """
        model = self._kind.model
        stmt = (
            select(model)
            .where(
                model.network_id == network_id,
                model.validator_id == validator_id,
                model.valid_from <= point,
                or_(model.valid_to.is_(None), model.valid_to > point),
            )
            .order_by(model.valid_from.desc())
            .limit(1)
        )
        row = self._execute_scalar(stmt)
        return self._to_fact(row) if row is not None else None

    def open_fact(self, network_id: int, validator_id: int) -> Optional[TemporalFact]:
        """Get the currently open fact, if any."""
        row = self._open_row(network_id, validator_id)
        return self._to_fact(row) if row is not None else None

    def history(self, network_id: int, validator_id: int) -> List[TemporalFact]:
        """Get every fact for a validator, oldest first."""
        model = self._kind.model
        stmt = (
            select(model)
            .where(
                model.network_id == network_id,
                model.validator_id == validator_id,
            )
            .order_by(model.valid_from.asc())
        )
        return [self._to_fact(row) for row in self._execute_query(stmt)]

    # ---------------------------------------------------------
    # Internals
    # ---------------------------------------------------------

    def _open_row(self, network_id: int, validator_id: int) -> Optional[Any]:
        model = self._kind.model
        stmt = (
            select(model)
            .where(
                model.network_id == network_id,
                model.validator_id == validator_id,
                model.valid_to.is_(None),
            )
            .order_by(model.valid_from.desc())
            .limit(1)
        )
        return self._execute_scalar(stmt)

    def _close_row(self, row_id: int, valid_to: int) -> bool:
        """Close a fact only if it is still open; False if someone else closed it."""
        model = self._kind.model
        stmt = (
            update(model)
            .where(model.id == row_id, model.valid_to.is_(None))
            .values(valid_to=valid_to)
        )
        return self._execute_write(stmt, "close_open_fact") == 1

    def _row_starting_at(
        self,
        network_id: int,
        validator_id: int,
        valid_from: int,
    ) -> Optional[Any]:
        model = self._kind.model
        stmt = select(model).where(
            model.network_id == network_id,
            model.validator_id == validator_id,
            model.valid_from == valid_from,
        )
        return self._execute_scalar(stmt)

    def _to_fact(self, row: Any) -> TemporalFact:
        return TemporalFact(
            id=row.id,
            network_id=row.network_id,
            validator_id=row.validator_id,
            value=self._kind.decode(getattr(row, self._kind.value_attr)),
            valid_from=row.valid_from,
            valid_to=row.valid_to,
        )


def name_store(session: Session) -> TemporalRecordStore:
    """Temporal store for validator display names."""
    return TemporalRecordStore(session, VALIDATOR_NAME)


def membership_store(session: Session) -> TemporalRecordStore:
    """Temporal store for validator group membership."""
    return TemporalRecordStore(session, GROUP_MEMBERSHIP)
