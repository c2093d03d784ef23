"""
Incremental synchronization use case.

Runs the ``*/changes`` loop for one (account, data type) and the
``*/queryChanges`` step for one query, falling back to a full refetch when
the server can no longer calculate changes from the held token.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, ValidationError

from jmap_engine.application.services.error_classifier import ErrorClassifier
from jmap_engine.application.services.sync_tracker import SyncStateTracker
from jmap_engine.application.services.type_registry import (
    DataTypeDescriptor, UnsupportedMethodError)
from jmap_engine.application.use_cases.batch_executor import BatchExecutor
from jmap_engine.domain.entities import MethodResult, Record
from jmap_engine.domain.enums import DataType, Operation
from jmap_engine.domain.exceptions import ProtocolViolation
from jmap_engine.domain.value_objects import SyncKey
from jmap_engine.schemas import (AddedItem, ChangesResponse, GetResponse,
                                 QueryChangesResponse, QueryResponse)
from jmap_engine.shared.telemetry.logging import get_logger
from jmap_engine.shared.telemetry.tracing import add_span_event, traced

logger = get_logger(__name__)

CHANGES_ID = "changes"
CREATED_ID = "created"
UPDATED_ID = "updated"
FETCH_ID = "fetch"
QUERY_ID = "query"


@dataclass
class SyncResult:
    """What changed for one key since the last committed state"""

    key: SyncKey
    state: str
    full: bool = False
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    destroyed: list[str] = field(default_factory=list)
    records: dict[str, Record] = field(default_factory=dict)
    iterations: int = 0


@dataclass
class QuerySyncResult:
    """Result of a query sync: the full id list, or the delta since the last query state"""

    key: SyncKey
    query_state: str
    full: bool = False
    ids: list[str] = field(default_factory=list)
    added: list[AddedItem] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    total: int | None = None


def _parse(model: type[BaseModel], result: MethodResult) -> Any:
    try:
        return model.model_validate(result.payload)
    except ValidationError as e:
        raise ProtocolViolation(f"Malformed {result.name} response: {e}", client_id=result.client_id) from e


class IncrementalSyncService:
    """
    Keeps a local view of a data type current.

    The first sync of a key is a full fetch; later syncs thread newState
    through ``*/changes`` until hasMoreChanges is false. The key's token only
    moves once the loop settles; failures and cancellation abort the loop
    and keep the token it started from, so the next sync sees every change
    again. A full fetch holds the key the same way.
    """

    def __init__(
        self,
        executor: BatchExecutor,
        tracker: SyncStateTracker | None = None,
        classifier: ErrorClassifier | None = None,
        *,
        max_changes: int | None = 256,
        max_iterations: int = 1000,
    ) -> None:
        self.executor = executor
        self.tracker = tracker or executor.tracker
        self.classifier = classifier or executor.classifier
        self.registry = executor.registry
        self.max_changes = max_changes
        self.max_iterations = max_iterations

    def _descriptor(self, data_type: DataType | str, operation: Operation) -> DataTypeDescriptor:
        descriptor = self.registry.descriptor(data_type)
        if not descriptor.supports_state or not descriptor.supports(operation.value):
            raise UnsupportedMethodError(
                f"{descriptor.data_type}/{operation.value}", "type cannot be synchronized incrementally"
            )
        return descriptor

    @traced("jmap.sync.changes")
    async def sync(
        self,
        account_id: str,
        data_type: DataType | str,
        *,
        fetch_records: bool = True,
        properties: list[str] | None = None,
    ) -> SyncResult:
        """
        Bring one (account, data type) up to date.

        Args:
            account_id: Account to synchronize
            data_type: Data type to synchronize
            fetch_records: Also fetch created and updated objects in the same batches
            properties: Properties to fetch (None for all)

        Raises:
            SyncInProgressError: Another loop owns the key
            MethodFailure: A non-invalidating method error ended the loop
            ProtocolViolation: The loop did not converge or a response was malformed
        """
        descriptor = self._descriptor(data_type, Operation.CHANGES)
        key = SyncKey(account_id, descriptor.data_type)

        if self.tracker.snapshot(key).is_unsynced:
            return await self.full_refetch(key, properties)

        since = self.tracker.begin_sync(key)
        result = SyncResult(key=key, state=since)
        invalidated = False
        try:
            for iteration in range(1, self.max_iterations + 1):
                calls = [replace(descriptor.changes(account_id, since, self.max_changes), client_id=CHANGES_ID)]
                if fetch_records and descriptor.supports(Operation.GET.value):
                    changes_call = calls[0]
                    calls.append(
                        replace(
                            descriptor.get(account_id, ids=changes_call.ref("/created"), properties=properties),
                            client_id=CREATED_ID,
                        )
                    )
                    calls.append(
                        replace(
                            descriptor.get(account_id, ids=changes_call.ref("/updated"), properties=properties),
                            client_id=UPDATED_ID,
                        )
                    )

                outcome = await self.executor.execute(calls)
                changes_result = outcome[CHANGES_ID]

                if changes_result.error is not None:
                    if self.classifier.invalidates_state(changes_result.error.error_type):
                        # Server lost history for our token: discard it and start over
                        logger.warning(
                            "%s for %s; falling back to full refetch", changes_result.error.error_type, key
                        )
                        add_span_event("sync.invalidated", {"key": str(key)})
                        self.tracker.invalidate(key)
                        invalidated = True
                        break
                    raise changes_result.error

                changes = _parse(ChangesResponse, changes_result)
                fetched: list[Record] = []
                for client_id in (CREATED_ID, UPDATED_ID):
                    if client_id in outcome.results:
                        payload = outcome[client_id].raise_for_error()
                        fetched.extend(
                            Record(id=item["id"], properties=item)
                            for item in payload.get("list", [])
                            if isinstance(item, dict) and "id" in item
                        )

                since = self.tracker.commit(key, changes.old_state, changes.new_state, changes.has_more_changes)
                result.state = since
                result.iterations = iteration
                result.created.extend(changes.created)
                result.updated.extend(changes.updated)
                result.destroyed.extend(changes.destroyed)
                for record in fetched:
                    result.records[record.id] = record

                if not changes.has_more_changes:
                    logger.info(
                        "Synced %s to %s: %d created, %d updated, %d destroyed",
                        key,
                        since,
                        len(result.created),
                        len(result.updated),
                        len(result.destroyed),
                    )
                    return result

            if not invalidated:
                raise ProtocolViolation(
                    f"Changes for {key} did not settle after {self.max_iterations} iterations",
                    key=str(key),
                )
        except BaseException:
            self.tracker.abort(key)
            raise

        return await self.full_refetch(key, properties)

    @traced("jmap.sync.full")
    async def full_refetch(self, key: SyncKey, properties: list[str] | None = None) -> SyncResult:
        """
        Fetch every object of the type and capture a fresh state.

        Raises:
            SyncInProgressError: A loop or another full fetch owns the key
        """
        descriptor = self.registry.descriptor(key.data_type)
        call = replace(descriptor.get(key.account_id, ids=None, properties=properties), client_id=FETCH_ID)

        self.tracker.begin_full(key)
        try:
            outcome = await self.executor.execute([call])
            fetch_result = outcome[FETCH_ID]
            fetch_result.raise_for_error()
            response = _parse(GetResponse, fetch_result)
        except BaseException:
            self.tracker.abort(key)
            raise

        self.tracker.commit_full(key, response.state)
        records = {item["id"]: Record(id=item["id"], properties=item) for item in response.records if "id" in item}
        logger.info("Full fetch of %s: %d record(s) at state %s", key, len(records), response.state)
        return SyncResult(key=key, state=response.state, full=True, records=records, iterations=1)

    @traced("jmap.sync.query")
    async def sync_query(
        self,
        account_id: str,
        data_type: DataType | str,
        filter: dict[str, Any] | None = None,
        sort: list[dict[str, Any]] | None = None,
    ) -> QuerySyncResult:
        """
        Bring one query's result list up to date via ``*/queryChanges``.

        Raises:
            SyncInProgressError: Another loop owns the query key
            MethodFailure: A non-invalidating method error
        """
        descriptor = self._descriptor(data_type, Operation.QUERY_CHANGES)
        key = SyncKey.for_query(account_id, descriptor.data_type, filter, sort)

        if self.tracker.snapshot(key).is_unsynced:
            return await self._full_query(key, descriptor, filter, sort)

        since = self.tracker.begin_sync(key)
        try:
            call = replace(
                descriptor.query_changes(
                    account_id, since, filter=filter, sort=sort, max_changes=self.max_changes, calculate_total=True
                ),
                client_id=CHANGES_ID,
            )
            outcome = await self.executor.execute([call])
            changes_result = outcome[CHANGES_ID]

            if changes_result.error is not None:
                if not self.classifier.invalidates_state(changes_result.error.error_type):
                    raise changes_result.error
                logger.warning("%s for query %s; re-running query", changes_result.error.error_type, key)
                self.tracker.invalidate(key)
            else:
                changes = _parse(QueryChangesResponse, changes_result)
                state = self.tracker.commit(key, changes.old_query_state, changes.new_query_state, has_more=False)
                return QuerySyncResult(
                    key=key,
                    query_state=state,
                    added=changes.added,
                    removed=changes.removed,
                    total=changes.total,
                )
        except BaseException:
            self.tracker.abort(key)
            raise

        return await self._full_query(key, descriptor, filter, sort)

    async def _full_query(
        self,
        key: SyncKey,
        descriptor: DataTypeDescriptor,
        filter: dict[str, Any] | None,
        sort: list[dict[str, Any]] | None,
    ) -> QuerySyncResult:
        call = replace(
            descriptor.query(key.account_id, filter=filter, sort=sort, calculate_total=True), client_id=QUERY_ID
        )
        self.tracker.begin_full(key)
        try:
            outcome = await self.executor.execute([call])
            query_result = outcome[QUERY_ID]
            query_result.raise_for_error()
            response = _parse(QueryResponse, query_result)
        except BaseException:
            self.tracker.abort(key)
            raise

        if response.can_calculate_changes:
            self.tracker.commit_full(key, response.query_state)
        else:
            self.tracker.abort(key)
            logger.debug("Server cannot calculate changes for query %s; not tracking state", key)
        return QuerySyncResult(
            key=key, query_state=response.query_state, full=True, ids=response.ids, total=response.total
        )
