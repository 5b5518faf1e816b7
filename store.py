from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from models import Collection, StoredCollection
from periods import local_today
from schemas import MonthlyBudget, SavingsProject, Transaction, UserProfile
import seed


logger = logging.getLogger(__name__)


class StorePersistenceError(RuntimeError):
    pass


_SEQUENCE_ADAPTERS: dict[Collection, TypeAdapter] = {
    Collection.transactions: TypeAdapter(list[Transaction]),
    Collection.budgets: TypeAdapter(list[MonthlyBudget]),
    Collection.savings: TypeAdapter(list[SavingsProject]),
}


class RecordStore:
    """Durable storage for the four collections, one JSON document each.

    Every write replaces a whole collection inside a single SQL transaction,
    so readers only ever see the previous or the new snapshot. A failed write
    is rolled back and surfaces as ``StorePersistenceError``. A document that
    no longer parses is logged and read as an empty collection.
    """

    def __init__(
        self,
        session: Session,
        *,
        seed_defaults: Optional[bool] = None,
        today: Optional[date] = None,
    ) -> None:
        self.session = session
        self.seed_defaults = (
            get_settings().seed_defaults if seed_defaults is None else seed_defaults
        )
        self._today = today

    @staticmethod
    def _adapter(collection: Collection) -> TypeAdapter:
        try:
            return _SEQUENCE_ADAPTERS[collection]
        except KeyError:
            raise ValueError(f"{collection.value} is not a sequence collection") from None

    def _row(self, collection: Collection) -> Optional[StoredCollection]:
        return self.session.get(
            StoredCollection, collection.value, populate_existing=True
        )

    def _seed_records(self, collection: Collection) -> list[BaseModel]:
        today = self._today or local_today()
        if collection == Collection.transactions:
            return list(seed.initial_transactions(today))
        if collection == Collection.budgets:
            return list(seed.initial_budgets(today))
        return list(seed.initial_savings())

    def read(self, collection: Collection) -> list:
        adapter = self._adapter(collection)
        row = self._row(collection)
        if row is None:
            if not self.seed_defaults:
                return []
            records = self._seed_records(collection)
            logger.info(f"store_seed: collection={collection.value} records={len(records)}")
            self.write(collection, records)
            return records
        try:
            return adapter.validate_json(row.payload)
        except ValidationError as exc:
            logger.warning(
                f"store_malformed: collection={collection.value} "
                f"version={row.version} errors={exc.error_count()}"
            )
            return []

    def write(self, collection: Collection, records: Sequence[BaseModel]) -> None:
        payload = self._adapter(collection).dump_json(list(records)).decode("utf-8")
        self._put(collection, payload)

    def read_profile(self) -> UserProfile:
        row = self._row(Collection.profile)
        if row is not None:
            try:
                return UserProfile.model_validate_json(row.payload)
            except ValidationError:
                logger.warning(f"store_malformed: collection=profile version={row.version}")
        profile = seed.new_profile()
        self.write_profile(profile)
        return profile

    def write_profile(self, profile: UserProfile) -> None:
        self._put(Collection.profile, profile.model_dump_json())

    def version(self, collection: Collection) -> int:
        row = self._row(collection)
        return row.version if row is not None else 0

    def _put(self, collection: Collection, payload: str) -> None:
        try:
            row = self._row(collection)
            if row is None:
                row = StoredCollection(name=collection.value, version=0, payload=payload)
                self.session.add(row)
            row.payload = payload
            row.version = (row.version or 0) + 1
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"store_write_failed: collection={collection.value} error={exc}")
            raise StorePersistenceError(
                f"Failed to persist collection '{collection.value}'"
            ) from exc
