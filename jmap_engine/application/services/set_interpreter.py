"""
Set outcome interpretation and creation-id resolution.

Splits a ``*/set`` (or ``*/copy``, ``Email/import``) payload into
per-object successes and failures, and tracks creation id -> permanent id
so later requests can refer to objects created earlier.
"""

from __future__ import annotations

import threading
from typing import Any

from jmap_engine.application.services.error_classifier import ErrorClassifier
from jmap_engine.domain.entities import (MethodResult, ObjectFailure, Record,
                                         SetOutcome)
from jmap_engine.domain.exceptions import (NotYetCreatedError,
                                           ProtocolViolation)
from jmap_engine.domain.value_objects import REFERENCE_PREFIX
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

# Methods whose payload carries created/notCreated style maps
SET_LIKE_OPERATIONS = frozenset({"set", "copy", "import"})


class TempIdResolver:
    """Creation id -> permanent id map shared across the batches of one execute call"""

    def __init__(self):
        self._ids: dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, creation_id: str, permanent_id: str) -> None:
        with self._lock:
            existing = self._ids.get(creation_id)
            if existing is not None and existing != permanent_id:
                raise ProtocolViolation(
                    f"Creation id {creation_id} already maps to {existing}",
                    creation_id=creation_id,
                )
            self._ids[creation_id] = permanent_id

    def register_all(self, created_ids: dict[str, str]) -> None:
        for creation_id, permanent_id in created_ids.items():
            self.register(creation_id, permanent_id)

    def resolve_temp_id(self, creation_id: str) -> str:
        """
        Return the permanent id for a creation id (with or without ``#``).

        Raises:
            NotYetCreatedError: If the creation id has not been confirmed
        """
        key = creation_id[len(REFERENCE_PREFIX):] if creation_id.startswith(REFERENCE_PREFIX) else creation_id
        with self._lock:
            permanent = self._ids.get(key)
        if permanent is None:
            raise NotYetCreatedError(key)
        return permanent

    def __contains__(self, creation_id: str) -> bool:
        with self._lock:
            return creation_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def as_created_ids(self) -> dict[str, str]:
        with self._lock:
            return dict(self._ids)

    def rewrite(self, value: Any) -> Any:
        """
        Replace known ``#creationId`` strings and mapping keys with permanent ids.

        Unknown creation ids are left untouched; the server may still
        resolve them from the same request.
        """
        return self._rewrite(value, self.as_created_ids())

    def _rewrite(self, value: Any, ids: dict[str, str]) -> Any:
        if isinstance(value, str):
            if value.startswith(REFERENCE_PREFIX):
                permanent = ids.get(value[len(REFERENCE_PREFIX):])
                if permanent is not None:
                    return permanent
            return value
        if isinstance(value, dict):
            rewritten = {}
            for key, item in value.items():
                if isinstance(key, str) and key.startswith(REFERENCE_PREFIX):
                    key = ids.get(key[len(REFERENCE_PREFIX):], key)
                rewritten[key] = self._rewrite(item, ids)
            return rewritten
        if isinstance(value, list):
            return [self._rewrite(item, ids) for item in value]
        return value


class SetOutcomeInterpreter:
    """Turns set-like payloads into SetOutcome entities"""

    def __init__(self, classifier: ErrorClassifier | None = None):
        self.classifier = classifier or ErrorClassifier()

    @staticmethod
    def applies_to(method: str) -> bool:
        return method.partition("/")[2] in SET_LIKE_OPERATIONS

    def interpret(self, result: MethodResult) -> SetOutcome:
        """
        Parse ``result.payload``.

        Raises:
            ProtocolViolation: An id is both succeeded and failed, or a
                created entry has no server id
        """
        payload = result.payload
        outcome = SetOutcome(
            account_id=payload.get("accountId"),
            old_state=payload.get("oldState"),
            new_state=payload.get("newState"),
        )

        for creation_id, properties in (payload.get("created") or {}).items():
            if not isinstance(properties, dict) or not isinstance(properties.get("id"), str):
                raise ProtocolViolation(
                    f"{result.name} created {creation_id} without a server id", creation_id=creation_id
                )
            outcome.created[creation_id] = Record(id=properties["id"], properties=properties)

        for object_id, properties in (payload.get("updated") or {}).items():
            # null means the server changed nothing beyond what was sent
            outcome.updated[object_id] = Record(id=object_id, properties=properties) if properties else None

        outcome.destroyed = list(payload.get("destroyed") or [])

        outcome.not_created = self._failures(payload.get("notCreated"))
        outcome.not_updated = self._failures(payload.get("notUpdated"))
        outcome.not_destroyed = self._failures(payload.get("notDestroyed"))

        self._check_disjoint(result.name, outcome.created, outcome.not_created)
        self._check_disjoint(result.name, outcome.updated, outcome.not_updated)
        self._check_disjoint(result.name, outcome.destroyed, outcome.not_destroyed)

        if outcome.has_failures:
            logger.info(
                "%s [%s]: %d object failure(s)", result.name, result.client_id, len(outcome.failures())
            )
        return outcome

    def _failures(self, errors: dict[str, Any] | None) -> dict[str, ObjectFailure]:
        failures: dict[str, ObjectFailure] = {}
        for object_id, error in (errors or {}).items():
            if not isinstance(error, dict) or not isinstance(error.get("type"), str):
                raise ProtocolViolation(f"Malformed SetError for {object_id}", object_id=object_id)
            extra = {k: v for k, v in error.items() if k not in ("type", "description", "properties")}
            failures[object_id] = ObjectFailure(
                id=object_id,
                error_type=error["type"],
                description=error.get("description"),
                properties=tuple(error.get("properties") or ()),
                extra=extra,
                classification=self.classifier.classify_object(error["type"], error),
            )
        return failures

    @staticmethod
    def _check_disjoint(method: str, succeeded, failed: dict[str, ObjectFailure]) -> None:
        overlap = set(succeeded) & set(failed)
        if overlap:
            raise ProtocolViolation(
                f"{method} reports {sorted(overlap)} as both succeeded and failed", ids=sorted(overlap)
            )
