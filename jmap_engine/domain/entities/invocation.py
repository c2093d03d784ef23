"""
Method call and method result entities.

A MethodCall is created by the request builder and consumed once by the
transport. A MethodResult is the demultiplexed, classified response slot
for one call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from jmap_engine.domain.enums import ResultStatus
from jmap_engine.domain.exceptions import MethodFailure
from jmap_engine.domain.value_objects import (REFERENCE_PREFIX,
                                              ErrorClassification,
                                              ResultReference)

if TYPE_CHECKING:
    from jmap_engine.domain.entities.set_outcome import SetOutcome


@dataclass(frozen=True)
class MethodCall:
    """
    One invocation inside a batch: (method name, arguments, client id).

    Argument values are either plain JSON values or ResultReference
    instances; references are emitted with the reserved key prefix.
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    client_id: str | None = None

    def __post_init__(self):
        if "/" not in self.name:
            raise ValueError(f"Method name must be 'Type/method': {self.name!r}")
        for key in self.arguments:
            if key.startswith(REFERENCE_PREFIX):
                raise ValueError(
                    f"Argument {key!r} uses the reference prefix; pass a ResultReference value instead"
                )

    @property
    def data_type(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def operation(self) -> str:
        return self.name.split("/", 1)[1]

    def references(self) -> list[ResultReference]:
        """All result references among this call's arguments"""
        return [value for value in self.arguments.values() if isinstance(value, ResultReference)]

    def ref(self, path: str) -> ResultReference:
        """Build a reference to a value in this call's future result"""
        if self.client_id is None:
            raise ValueError(f"Cannot reference {self.name} before it has a client id")
        return ResultReference(result_of=self.client_id, name=self.name, path=path)

    def to_wire(self) -> list[Any]:
        if self.client_id is None:
            raise ValueError(f"{self.name} has no client id")
        wire_args: dict[str, Any] = {}
        for key, value in self.arguments.items():
            if isinstance(value, ResultReference):
                wire_args[f"{REFERENCE_PREFIX}{key}"] = value.to_wire()
            else:
                wire_args[key] = value
        return [self.name, wire_args, self.client_id]


@dataclass
class MethodResult:
    """
    The response slot for one call after demultiplexing.

    Exactly one of ``payload`` (success) or ``error`` (method_error) is the
    meaningful part; malformed and skipped slots carry an error too so
    nothing is silently dropped.
    """

    name: str
    client_id: str
    status: ResultStatus
    payload: dict[str, Any] = field(default_factory=dict)
    error: MethodFailure | None = None
    classification: ErrorClassification | None = None
    implicit: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    set_outcome: SetOutcome | None = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def raise_for_error(self) -> dict[str, Any]:
        """Return the payload, or raise the attached MethodFailure"""
        if self.error is not None:
            raise self.error
        return self.payload
