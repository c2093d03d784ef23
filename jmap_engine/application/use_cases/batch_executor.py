"""
Batch execution use case.

Glue between the engine's services: negotiates the session, builds and
chunks the batch, sends each chunk, and turns every response into
classified MethodResults.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

from jmap_engine.application.services.authorized_transport import \
    AuthorizedTransport
from jmap_engine.application.services.error_classifier import (ErrorClassifier,
                                                               exit_code)
from jmap_engine.application.services.request_builder import (BatchRequest,
                                                              RequestBuilder)
from jmap_engine.application.services.response_demux import \
    ResponseDemultiplexer
from jmap_engine.application.services.session_negotiator import \
    SessionNegotiator
from jmap_engine.application.services.set_interpreter import (
    SetOutcomeInterpreter, TempIdResolver)
from jmap_engine.application.services.sync_tracker import SyncStateTracker
from jmap_engine.application.services.type_registry import TypeRegistry
from jmap_engine.domain.entities import MethodCall, MethodResult, Session
from jmap_engine.domain.enums import (DataType, ErrorClass, ExitCode,
                                      Operation)
from jmap_engine.domain.exceptions import (SafetyRejectedError,
                                           UnsupportedCapabilityError)
from jmap_engine.domain.value_objects import ErrorClassification, SyncKey
from jmap_engine.shared.telemetry.logging import get_logger
from jmap_engine.shared.telemetry.tracing import (add_span_attributes,
                                                  add_span_event, traced)

logger = get_logger(__name__)

ConfirmCallback = Callable[[list[MethodCall]], "bool | Awaitable[bool]"]

# Most severe first
_SEVERITY = (ErrorClass.SAFETY, ErrorClass.PERMANENT, ErrorClass.REAUTHENTICATE, ErrorClass.RETRYABLE)


@dataclass
class BatchOutcome:
    """Every call's result for one executed (or dry-run) call sequence"""

    results: dict[str, MethodResult] = field(default_factory=dict)
    batches: list[BatchRequest] = field(default_factory=list)
    session_state: str | None = None
    dry_run: bool = False
    created_ids: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, client_id: str) -> MethodResult:
        return self.results[client_id]

    def __iter__(self):
        return iter(self.results.values())

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results.values())

    def failures(self) -> list[MethodResult]:
        return [result for result in self.results.values() if not result.ok]

    def classifications(self) -> list[ErrorClassification]:
        """Method-level and per-object classifications, in call order"""
        found: list[ErrorClassification] = []
        for result in self.results.values():
            if result.classification is not None:
                found.append(result.classification)
            if result.set_outcome is not None:
                found.extend(f.classification for f in result.set_outcome.failures() if f.classification)
        return found

    def worst_classification(self) -> ErrorClassification | None:
        classifications = self.classifications()
        for error_class in _SEVERITY:
            for classification in classifications:
                if classification.error_class == error_class:
                    return classification
        return None

    @property
    def exit_code(self) -> ExitCode:
        return exit_code(self.worst_classification())


class BatchExecutor:
    """Executes call sequences against the negotiated session"""

    def __init__(
        self,
        negotiator: SessionNegotiator,
        transport: AuthorizedTransport,
        tracker: SyncStateTracker | None = None,
        registry: TypeRegistry | None = None,
        classifier: ErrorClassifier | None = None,
        *,
        max_calls_fallback: int = 16,
        send_created_ids: bool = True,
        require_confirmation: bool = False,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self.negotiator = negotiator
        self.transport = transport
        self.tracker = tracker or SyncStateTracker()
        self.registry = registry or negotiator.registry
        self.classifier = classifier or ErrorClassifier()
        self.demux = ResponseDemultiplexer(self.classifier)
        self.interpreter = SetOutcomeInterpreter(self.classifier)
        self.max_calls_fallback = max_calls_fallback
        self.send_created_ids = send_created_ids
        self.require_confirmation = require_confirmation
        self.confirm = confirm

    def builder(self) -> RequestBuilder:
        """A fresh builder sized to the server's call limit"""
        session = self.negotiator.current
        max_calls = session.max_calls_in_request if session else self.max_calls_fallback
        return RequestBuilder(registry=self.registry, max_calls=max_calls)

    async def call(self, call: MethodCall) -> MethodResult:
        """Execute a single call and return its result"""
        outcome = await self.execute([call])
        return next(iter(outcome.results.values()))

    @traced("jmap.batch.execute")
    async def execute(self, calls: list[MethodCall] | RequestBuilder, *, dry_run: bool = False) -> BatchOutcome:
        """
        Execute a call sequence.

        Args:
            calls: Calls in order, or a builder holding them
            dry_run: Build and validate without sending anything

        Returns:
            BatchOutcome with one MethodResult per call

        Raises:
            RequestConstructionError: The sequence cannot be built
            UnsupportedCapabilityError: A call needs a capability the session lacks
            StateInvalidatedError: A changes call reuses an invalidated token
            SafetyRejectedError: A destructive batch was not confirmed
            TransportFailure / RequestRejected / ProtocolViolation: The exchange failed
        """
        sequence = calls.calls if isinstance(calls, RequestBuilder) else list(calls)

        # 1. Capability context
        session = await self.negotiator.negotiate()
        self._check_capabilities(session, sequence)
        self._check_sync_tokens(sequence)

        # 2. Build, validate references and chunk
        builder = RequestBuilder(registry=self.registry, max_calls=session.max_calls_in_request)
        batches = builder.build(sequence)
        add_span_attributes(calls=len(sequence), batches=len(batches))

        # 3. Safety gate for destructive or sending batches
        await self._check_safety([call for batch in batches for call in batch.calls])

        outcome = BatchOutcome(batches=batches, dry_run=dry_run)
        if dry_run:
            logger.info("Dry run: %d call(s) in %d batch(es) not sent", len(sequence), len(batches))
            return outcome

        # Creation ids are scoped to this call sequence
        resolver = TempIdResolver()

        # 4. Send each chunk; a transport or request failure aborts the remainder
        for number, batch in enumerate(batches, start=1):
            batch = self._prepare(batch, resolver)
            logger.debug("Sending batch %d/%d (%d calls)", number, len(batches), len(batch.calls))
            raw = await self.transport.send(session.api_url, batch.to_bytes())
            document = self.demux.parse(raw)
            response = self.demux.demux(batch, document)

            # 5. Interpret set results and learn created ids before the next chunk
            for result in response:
                if result.ok and self.interpreter.applies_to(result.name):
                    result.set_outcome = self.interpreter.interpret(result)
                    resolver.register_all(result.set_outcome.created_ids())
                if result.classification is not None and result.classification.refresh_session:
                    self.negotiator.invalidate()
            resolver.register_all(response.created_ids)

            self.negotiator.mark_stale(response.session_state)
            outcome.session_state = response.session_state or outcome.session_state
            outcome.results.update(response.results)
            outcome.created_ids = resolver.as_created_ids()
            add_span_event("jmap.batch.received", {"batch": number, "failures": len(response.failures())})

        if not outcome.ok:
            logger.info("Batch finished with %d failed call(s)", len(outcome.failures()))
        return outcome

    def _prepare(self, batch: BatchRequest, resolver: TempIdResolver) -> BatchRequest:
        calls = [replace(call, arguments=resolver.rewrite(call.arguments)) for call in batch.calls]
        created_ids = resolver.as_created_ids() if self.send_created_ids else None
        return BatchRequest(using=batch.using, calls=calls, created_ids=created_ids)

    def _check_capabilities(self, session: Session, calls: list[MethodCall]) -> None:
        for call in calls:
            descriptor, _ = self.registry.resolve(call.name)
            account_id = call.arguments.get("accountId")
            if isinstance(account_id, str):
                self.negotiator.required_capabilities(account_id, descriptor.data_type)
            elif not session.supports(descriptor.capability):
                raise UnsupportedCapabilityError(descriptor.capability)

    def _check_sync_tokens(self, calls: list[MethodCall]) -> None:
        for call in calls:
            account_id = call.arguments.get("accountId")
            if not isinstance(account_id, str):
                continue
            if call.operation == Operation.CHANGES.value:
                token = call.arguments.get("sinceState")
                key = SyncKey(account_id, call.data_type)
            elif call.operation == Operation.QUERY_CHANGES.value:
                token = call.arguments.get("sinceQueryState")
                key = SyncKey.for_query(
                    account_id, call.data_type, call.arguments.get("filter"), call.arguments.get("sort")
                )
            else:
                continue
            if isinstance(token, str):
                self.tracker.ensure_usable(key, token)

    @staticmethod
    def destructive_calls(calls: list[MethodCall]) -> list[MethodCall]:
        """Calls that destroy objects or submit mail"""
        flagged = []
        for call in calls:
            if call.operation != Operation.SET.value:
                continue
            if call.arguments.get("destroy"):
                flagged.append(call)
            elif call.data_type == DataType.EMAIL_SUBMISSION.value and call.arguments.get("create"):
                flagged.append(call)
        return flagged

    async def _check_safety(self, calls: list[MethodCall]) -> None:
        if not self.require_confirmation:
            return
        flagged = self.destructive_calls(calls)
        if not flagged:
            return

        names = [f"{call.name} [{call.client_id or '-'}]" for call in flagged]
        if self.confirm is None:
            raise SafetyRejectedError("Destructive batch requires confirmation", names)

        approved = self.confirm(flagged)
        if inspect.isawaitable(approved):
            approved = await approved
        if not approved:
            logger.warning("Destructive batch rejected: %s", ", ".join(names))
            raise SafetyRejectedError("Destructive batch was not confirmed", names)
