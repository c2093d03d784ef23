"""
Request builder.

Assigns client ids, validates result references, computes the capability
declaration and splits a call sequence into wire batches that respect the
server's per-request call limit without cutting a reference.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from jmap_engine.application.services.type_registry import TypeRegistry
from jmap_engine.domain.entities import MethodCall
from jmap_engine.domain.enums import Capability
from jmap_engine.domain.exceptions import (DuplicateClientIdError,
                                           InvalidResultReferenceError,
                                           RequestTooLargeError)
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

CLIENT_ID_PREFIX = "c"


@dataclass
class BatchRequest:
    """One HTTP exchange worth of method calls"""

    using: list[str]
    calls: list[MethodCall]
    created_ids: dict[str, str] | None = None

    @property
    def client_ids(self) -> list[str]:
        return [call.client_id for call in self.calls]

    def to_wire(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "using": list(self.using),
            "methodCalls": [call.to_wire() for call in self.calls],
        }
        if self.created_ids is not None:
            document["createdIds"] = dict(self.created_ids)
        return document

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


@dataclass
class RequestBuilder:
    """
    Builds batches from an ordered call sequence.

    Calls can be accumulated with ``add()`` (which returns the identified
    call so later calls can ``ref()`` it) or passed straight to ``build()``.
    """

    registry: TypeRegistry = field(default_factory=TypeRegistry)
    max_calls: int = 16
    _calls: list[MethodCall] = field(default_factory=list, init=False, repr=False)
    _counter: int = field(default=0, init=False, repr=False)

    def _next_client_id(self, taken: set[str]) -> str:
        while True:
            client_id = f"{CLIENT_ID_PREFIX}{self._counter}"
            self._counter += 1
            if client_id not in taken:
                return client_id

    def add(self, name: str, arguments: dict[str, Any] | None = None, client_id: str | None = None) -> MethodCall:
        """
        Append a call, assigning the next sequential client id if none is given.

        Raises:
            DuplicateClientIdError: If ``client_id`` is already used
            UnsupportedMethodError: If the registry does not know the method
        """
        self.registry.resolve(name)
        taken = {call.client_id for call in self._calls}
        if client_id is None:
            client_id = self._next_client_id(taken)
        elif client_id in taken:
            raise DuplicateClientIdError(client_id)
        call = MethodCall(name, dict(arguments or {}), client_id)
        self._calls.append(call)
        return call

    def append(self, call: MethodCall) -> MethodCall:
        """Append a prebuilt call (e.g. from a descriptor builder)"""
        return self.add(call.name, call.arguments, call.client_id)

    @property
    def calls(self) -> list[MethodCall]:
        return list(self._calls)

    def reset(self) -> None:
        self._calls.clear()
        self._counter = 0

    def build(self, calls: list[MethodCall] | None = None) -> list[BatchRequest]:
        """
        Validate and chunk a call sequence.

        Args:
            calls: Calls to build; defaults to the calls accumulated via add()

        Returns:
            Contiguous, order-preserving batches

        Raises:
            DuplicateClientIdError: Two calls share a client id
            InvalidResultReferenceError: A reference is forward, dangling or names the wrong method
            RequestTooLargeError: A reference-linked run exceeds ``max_calls``
            UnsupportedMethodError: A method is not in the registry
        """
        sequence = self._identify(self._calls if calls is None else calls)
        if not sequence:
            return []

        positions = self._validate_references(sequence)
        batches = [
            BatchRequest(using=self.capabilities_for(chunk), calls=chunk)
            for chunk in self._chunk(sequence, positions)
        ]
        logger.debug("Built %d call(s) into %d batch(es)", len(sequence), len(batches))
        return batches

    def _identify(self, calls: list[MethodCall]) -> list[MethodCall]:
        taken = {call.client_id for call in calls if call.client_id is not None}
        seen: set[str] = set()
        identified: list[MethodCall] = []
        for call in calls:
            if call.client_id is None:
                call = replace(call, client_id=self._next_client_id(taken | seen))
            if call.client_id in seen:
                raise DuplicateClientIdError(call.client_id)
            seen.add(call.client_id)
            identified.append(call)
        return identified

    @staticmethod
    def _validate_references(sequence: list[MethodCall]) -> dict[str, int]:
        positions: dict[str, int] = {}
        for index, call in enumerate(sequence):
            for reference in call.references():
                source = positions.get(reference.result_of)
                if source is None:
                    reason = (
                        "refers to a later call"
                        if any(c.client_id == reference.result_of for c in sequence[index:])
                        else "no such call"
                    )
                    raise InvalidResultReferenceError(call.client_id, reference.result_of, reason)
                if sequence[source].name != reference.name:
                    raise InvalidResultReferenceError(
                        call.client_id,
                        reference.result_of,
                        f"names {reference.name} but the call is {sequence[source].name}",
                    )
            positions[call.client_id] = index
        return positions

    def capabilities_for(self, calls: list[MethodCall]) -> list[str]:
        """Core plus each call's capability, deduplicated in first-seen order"""
        using = [Capability.CORE.value]
        for call in calls:
            capability = self.registry.capability_for(call.name)
            if capability not in using:
                using.append(capability)
        return using

    def _chunk(self, sequence: list[MethodCall], positions: dict[str, int]) -> list[list[MethodCall]]:
        # A cut before index i is illegal if any call at or after i refers to a call before i
        earliest_source = [
            min((positions[r.result_of] for r in call.references()), default=index)
            for index, call in enumerate(sequence)
        ]
        total = len(sequence)
        limit = max(1, self.max_calls)

        chunks: list[list[MethodCall]] = []
        start = 0
        while start < total:
            if total - start <= limit:
                chunks.append(sequence[start:])
                break

            cut = None
            for candidate in range(start + limit, start, -1):
                if all(earliest_source[j] >= candidate for j in range(candidate, total)):
                    cut = candidate
                    break
            if cut is None:
                required = self._linked_run_length(earliest_source, start)
                raise RequestTooLargeError(limit, required)

            chunks.append(sequence[start:cut])
            start = cut
        return chunks

    @staticmethod
    def _linked_run_length(earliest_source: list[int], start: int) -> int:
        end = start + 1
        for j in range(start, len(earliest_source)):
            if earliest_source[j] < end:
                end = max(end, j + 1)
        return end - start
