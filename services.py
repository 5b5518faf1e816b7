from __future__ import annotations

import logging
from decimal import Decimal
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Sequence, Union
from uuid import uuid4

from csv_utils import parse_transactions_csv, parse_transactions_file
from events import Subscription, SubscriptionBus
from models import Category, Collection, ThemeColor
from schemas import (
    MonthlyBudget,
    SavingsProject,
    SavingsProjectIn,
    Transaction,
    TransactionIn,
    UserProfile,
)
from store import RecordStore, StorePersistenceError


logger = logging.getLogger(__name__)


class RecordNotFound(ValueError):
    pass


def normalize_id(value: Any) -> str:
    return str(value).strip()


def same_id(left: Any, right: Any) -> bool:
    return normalize_id(left) == normalize_id(right)


def new_id() -> str:
    return uuid4().hex


def _index_of(records: Sequence[Any], record_id: Any) -> int:
    for idx, record in enumerate(records):
        if same_id(record.id, record_id):
            return idx
    return -1


def _serialized(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.bus.lock:
            return method(self, *args, **kwargs)

    return wrapper


class _CollectionService:
    collection: Collection

    def __init__(self, store: RecordStore, bus: SubscriptionBus) -> None:
        self.store = store
        self.bus = bus

    @_serialized
    def list(self) -> list:
        return self.store.read(self.collection)

    def _commit(self, records: list) -> tuple:
        self.store.write(self.collection, records)
        snapshot = tuple(records)
        self.bus.notify(self.collection, snapshot)
        return snapshot


class TransactionService(_CollectionService):
    collection = Collection.transactions

    def get(self, transaction_id: str) -> Transaction:
        records = self.list()
        idx = _index_of(records, transaction_id)
        if idx == -1:
            raise RecordNotFound("Transaction not found")
        return records[idx]

    @_serialized
    def add(self, data: TransactionIn) -> Transaction:
        records = self.list()
        existing = {normalize_id(t.id) for t in records}
        txn_id = new_id()
        while txn_id in existing:
            txn_id = new_id()
        txn = Transaction(id=txn_id, **data.model_dump())
        records.append(txn)
        self._commit(records)
        logger.info(f"transaction_added: id={txn.id} count={len(records)}")
        return txn

    @_serialized
    def add_many(self, rows: Iterable[TransactionIn]) -> list[Transaction]:
        records = self.list()
        existing = {normalize_id(t.id) for t in records}
        added: list[Transaction] = []
        for data in rows:
            txn_id = new_id()
            while txn_id in existing:
                txn_id = new_id()
            existing.add(txn_id)
            added.append(Transaction(id=txn_id, **data.model_dump()))
        if not added:
            return []
        self._commit(records + added)
        logger.info(f"transactions_added: added={len(added)} count={len(records) + len(added)}")
        return added

    @_serialized
    def update(self, txn: Transaction) -> Transaction:
        records = self.list()
        idx = _index_of(records, txn.id)
        if idx == -1:
            logger.warning(f"transaction_update_not_found: id={normalize_id(txn.id)!r}")
            raise RecordNotFound("Transaction not found")
        updated = txn.model_copy(update={"id": records[idx].id})
        records[idx] = updated
        self._commit(records)
        logger.info(f"transaction_updated: id={updated.id}")
        return updated

    @_serialized
    def delete(self, transaction_id: str) -> None:
        target = normalize_id(transaction_id)
        records = self.list()
        idx = _index_of(records, target)
        if idx == -1:
            logger.warning(f"transaction_delete_not_found: id={target!r} count={len(records)}")
            raise RecordNotFound("Transaction not found")
        del records[idx]
        self._commit(records)
        logger.info(f"transaction_deleted: id={target} remaining={len(records)}")


class BudgetService(_CollectionService):
    collection = Collection.budgets

    def get_month(self, month: str) -> Optional[MonthlyBudget]:
        for budget in self.list():
            if budget.month == month:
                return budget
        return None

    @_serialized
    def set_budget(self, month: str, category: Category, amount: Decimal) -> MonthlyBudget:
        records = self.list()
        budget = next((b for b in records if b.month == month), None)
        if budget is None:
            budget = MonthlyBudget(month=month, categories={})
            records.append(budget)
        budget.categories[Category(category)] = Decimal(str(amount))
        self._commit(records)
        logger.info(f"budget_set: month={month} category={Category(category).value} amount={amount}")
        return budget


class SavingsService(_CollectionService):
    collection = Collection.savings

    @_serialized
    def add(self, data: SavingsProjectIn) -> SavingsProject:
        records = self.list()
        existing = {normalize_id(p.id) for p in records}
        project_id = new_id()
        while project_id in existing:
            project_id = new_id()
        project = SavingsProject(id=project_id, **data.model_dump())
        records.append(project)
        self._commit(records)
        logger.info(f"savings_added: id={project.id}")
        return project

    @_serialized
    def update(self, project: SavingsProject) -> SavingsProject:
        records = self.list()
        idx = _index_of(records, project.id)
        if idx == -1:
            raise RecordNotFound("Savings project not found")
        updated = project.model_copy(update={"id": records[idx].id})
        records[idx] = updated
        self._commit(records)
        return updated

    @_serialized
    def delete(self, project_id: str) -> None:
        target = normalize_id(project_id)
        records = self.list()
        idx = _index_of(records, target)
        if idx == -1:
            logger.warning(f"savings_delete_not_found: id={target!r}")
            raise RecordNotFound("Savings project not found")
        del records[idx]
        self._commit(records)
        logger.info(f"savings_deleted: id={target}")


class ProfileService:
    def __init__(self, store: RecordStore, bus: SubscriptionBus) -> None:
        self.store = store
        self.bus = bus

    @_serialized
    def get_profile(self) -> UserProfile:
        return self.store.read_profile()

    def _save(self, profile: UserProfile) -> UserProfile:
        self.store.write_profile(profile)
        self.bus.notify(Collection.profile, profile)
        return profile

    @_serialized
    def update_theme(self, theme: ThemeColor) -> UserProfile:
        profile = self.get_profile()
        profile.theme = ThemeColor(theme)
        return self._save(profile)

    @_serialized
    def add_viewer(self, viewer_id: str) -> UserProfile:
        viewer = normalize_id(viewer_id)
        if not viewer:
            raise ValueError("Viewer id cannot be empty")
        profile = self.get_profile()
        if viewer in profile.viewers:
            return profile
        profile.viewers.append(viewer)
        return self._save(profile)

    @_serialized
    def remove_viewer(self, viewer_id: str) -> UserProfile:
        viewer = normalize_id(viewer_id)
        profile = self.get_profile()
        if viewer not in profile.viewers:
            raise RecordNotFound("Viewer not found")
        profile.viewers.remove(viewer)
        return self._save(profile)


class DataService:
    def __init__(self, store: RecordStore, bus: Optional[SubscriptionBus] = None) -> None:
        self.store = store
        self.bus = bus or SubscriptionBus()
        self.transactions = TransactionService(store, self.bus)
        self.budgets = BudgetService(store, self.bus)
        self.savings = SavingsService(store, self.bus)
        self.profile = ProfileService(store, self.bus)

    @_serialized
    def snapshot(self, collection: Collection) -> Any:
        if collection == Collection.profile:
            return self.store.read_profile()
        return tuple(self.store.read(collection))

    @_serialized
    def subscribe(
        self, collection: Collection, handler: Callable[[Any], None]
    ) -> Subscription:
        subscription = self.bus.subscribe(collection, handler)
        handler(self.snapshot(collection))
        return subscription


class ImportService:
    def __init__(self, transactions: TransactionService) -> None:
        self.transactions = transactions

    def preview(
        self,
        content: Union[str, bytes],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> tuple[list[TransactionIn], list[str]]:
        if isinstance(content, str):
            return parse_transactions_csv(content)
        return parse_transactions_file(content, filename, content_type)

    def commit(
        self,
        content: Union[str, bytes],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> int:
        rows, errors = self.preview(content, filename, content_type)
        for error in errors:
            logger.info(f"import_row_skipped: {error}")
        try:
            added = self.transactions.add_many(rows)
        except StorePersistenceError:
            logger.exception(f"import_failed: rows={len(rows)}")
            return 0
        logger.info(f"import_committed: imported={len(added)} skipped={len(errors)}")
        return len(added)
