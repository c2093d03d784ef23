"""Data type registry: capability and operation table for every addressable type"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from jmap_engine.domain.entities import MethodCall
from jmap_engine.domain.enums import Capability, DataType, Operation
from jmap_engine.domain.exceptions import RequestConstructionError
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

STANDARD_OPERATIONS = frozenset(
    {Operation.GET, Operation.CHANGES, Operation.QUERY, Operation.QUERY_CHANGES, Operation.SET}
)


class UnsupportedMethodError(RequestConstructionError):
    """The registry has no entry for the data type or method."""

    def __init__(self, method: str, reason: str):
        super().__init__(
            f"Unsupported method {method}: {reason}",
            "UNSUPPORTED_METHOD",
            {"method": method, "reason": reason},
        )


@dataclass(frozen=True)
class DataTypeDescriptor:
    """
    One variant of the closed data-type set.

    Carries the capability a batch must declare to use the type and the
    subset of standard operations the type supports, and builds the
    corresponding method calls.
    """

    data_type: str
    capability: str
    operations: frozenset[Operation]
    extra_methods: frozenset[str] = field(default_factory=frozenset)
    # False for types whose responses carry no state token
    supports_state: bool = True

    def supports(self, method: str) -> bool:
        return method in {op.value for op in self.operations} or method in self.extra_methods

    def method_name(self, operation: Operation | str) -> str:
        method = operation.value if isinstance(operation, Operation) else operation
        if not self.supports(method):
            raise UnsupportedMethodError(
                f"{self.data_type}/{method}", f"{self.data_type} does not support {method}"
            )
        return f"{self.data_type}/{method}"

    def get(
        self,
        account_id: str,
        ids: list[str] | Any | None = None,
        properties: list[str] | None = None,
        **extra: Any,
    ) -> MethodCall:
        """Build ``Type/get``; ``ids=None`` fetches every object"""
        arguments: dict[str, Any] = {"accountId": account_id, "ids": ids}
        if properties is not None:
            arguments["properties"] = properties
        arguments.update(extra)
        return MethodCall(self.method_name(Operation.GET), arguments)

    def changes(self, account_id: str, since_state: str, max_changes: int | None = None) -> MethodCall:
        """Build ``Type/changes``"""
        arguments: dict[str, Any] = {"accountId": account_id, "sinceState": since_state}
        if max_changes is not None:
            arguments["maxChanges"] = max_changes
        return MethodCall(self.method_name(Operation.CHANGES), arguments)

    def query(
        self,
        account_id: str,
        filter: dict[str, Any] | None = None,
        sort: list[dict[str, Any]] | None = None,
        position: int | None = None,
        limit: int | None = None,
        calculate_total: bool = False,
        **extra: Any,
    ) -> MethodCall:
        """Build ``Type/query``"""
        arguments: dict[str, Any] = {"accountId": account_id}
        if filter is not None:
            arguments["filter"] = filter
        if sort is not None:
            arguments["sort"] = sort
        if position is not None:
            arguments["position"] = position
        if limit is not None:
            arguments["limit"] = limit
        if calculate_total:
            arguments["calculateTotal"] = True
        arguments.update(extra)
        return MethodCall(self.method_name(Operation.QUERY), arguments)

    def query_changes(
        self,
        account_id: str,
        since_query_state: str,
        filter: dict[str, Any] | None = None,
        sort: list[dict[str, Any]] | None = None,
        max_changes: int | None = None,
        up_to_id: str | None = None,
        calculate_total: bool = False,
    ) -> MethodCall:
        """Build ``Type/queryChanges``"""
        arguments: dict[str, Any] = {"accountId": account_id, "sinceQueryState": since_query_state}
        if filter is not None:
            arguments["filter"] = filter
        if sort is not None:
            arguments["sort"] = sort
        if max_changes is not None:
            arguments["maxChanges"] = max_changes
        if up_to_id is not None:
            arguments["upToId"] = up_to_id
        if calculate_total:
            arguments["calculateTotal"] = True
        return MethodCall(self.method_name(Operation.QUERY_CHANGES), arguments)

    def set(
        self,
        account_id: str,
        create: dict[str, dict[str, Any]] | None = None,
        update: dict[str, dict[str, Any]] | None = None,
        destroy: list[str] | Any | None = None,
        if_in_state: str | None = None,
        **extra: Any,
    ) -> MethodCall:
        """Build ``Type/set``"""
        arguments: dict[str, Any] = {"accountId": account_id}
        if if_in_state is not None:
            arguments["ifInState"] = if_in_state
        if create:
            arguments["create"] = create
        if update:
            arguments["update"] = update
        if destroy:
            arguments["destroy"] = destroy
        arguments.update(extra)
        return MethodCall(self.method_name(Operation.SET), arguments)


def _descriptor(
    data_type: DataType,
    capability: Capability,
    operations: set[Operation],
    extra_methods: set[str] | None = None,
    supports_state: bool = True,
) -> DataTypeDescriptor:
    return DataTypeDescriptor(
        data_type=data_type.value,
        capability=capability.value,
        operations=frozenset(operations),
        extra_methods=frozenset(extra_methods or ()),
        supports_state=supports_state,
    )


class TypeRegistry:
    """Registry of data-type descriptors keyed by type name"""

    _defaults: ClassVar[tuple[DataTypeDescriptor, ...]] = (
        _descriptor(DataType.CORE, Capability.CORE, set(), {"echo"}, supports_state=False),
        _descriptor(
            DataType.EMAIL, Capability.MAIL, set(STANDARD_OPERATIONS) | {Operation.COPY}, {"import", "parse"}
        ),
        _descriptor(DataType.MAILBOX, Capability.MAIL, set(STANDARD_OPERATIONS)),
        _descriptor(DataType.THREAD, Capability.MAIL, {Operation.GET, Operation.CHANGES}),
        _descriptor(DataType.SEARCH_SNIPPET, Capability.MAIL, {Operation.GET}, supports_state=False),
        _descriptor(DataType.IDENTITY, Capability.SUBMISSION, {Operation.GET, Operation.CHANGES, Operation.SET}),
        _descriptor(DataType.EMAIL_SUBMISSION, Capability.SUBMISSION, set(STANDARD_OPERATIONS)),
        _descriptor(DataType.VACATION_RESPONSE, Capability.VACATION_RESPONSE, {Operation.GET, Operation.SET}),
        _descriptor(DataType.BLOB, Capability.BLOB, {Operation.GET}, {"upload", "lookup"}, supports_state=False),
        _descriptor(DataType.PRINCIPAL, Capability.PRINCIPALS, set(STANDARD_OPERATIONS)),
        _descriptor(DataType.SHARE_NOTIFICATION, Capability.PRINCIPALS, set(STANDARD_OPERATIONS)),
        _descriptor(DataType.QUOTA, Capability.QUOTA, STANDARD_OPERATIONS - {Operation.SET}),
        _descriptor(DataType.MASKED_EMAIL, Capability.MASKED_EMAIL, {Operation.GET, Operation.SET}),
    )

    def __init__(self, descriptors: list[DataTypeDescriptor] | None = None):
        self._descriptors: dict[str, DataTypeDescriptor] = {
            descriptor.data_type: descriptor
            for descriptor in (descriptors if descriptors is not None else self._defaults)
        }

    def descriptor(self, data_type: DataType | str) -> DataTypeDescriptor:
        """
        Look up the descriptor for a data type.

        Raises:
            UnsupportedMethodError: If the type is not registered
        """
        name = data_type.value if isinstance(data_type, DataType) else data_type
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise UnsupportedMethodError(
                name, f"unknown data type (registered: {', '.join(self._descriptors)})"
            )
        return descriptor

    def resolve(self, method_name: str) -> tuple[DataTypeDescriptor, str]:
        """Split ``Type/method`` and validate it against the table"""
        data_type, _, method = method_name.partition("/")
        if not method:
            raise UnsupportedMethodError(method_name, "method name must be 'Type/method'")
        descriptor = self.descriptor(data_type)
        if not descriptor.supports(method):
            raise UnsupportedMethodError(method_name, f"{data_type} does not support {method}")
        return descriptor, method

    def capability_for(self, method_name: str) -> str:
        """Capability URI a batch must declare to carry this method"""
        descriptor, _ = self.resolve(method_name)
        return descriptor.capability

    def register(self, descriptor: DataTypeDescriptor) -> None:
        """
        Register a custom data type (vendor extension).

        Args:
            descriptor: Descriptor for the new type; replaces any existing entry
        """
        self._descriptors[descriptor.data_type] = descriptor
        logger.info("Registered data type: %s (%s)", descriptor.data_type, descriptor.capability)

    def list_supported_types(self) -> list[str]:
        """Get list of registered data type names"""
        return list(self._descriptors.keys())
