"""
Validation of pending changes against an external validation provider.

Results are derived state: they are owned by the pipeline, never recorded
in history, and keyed like authoring events (entity IRI, relation key).

Concurrency: at most one request per key is current. Issuing a new request
for a key supersedes the previous one; a superseded request's result is
dropped even if it resolves later. Issuance order decides, not completion
order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Hashable, Mapping

from ..cancellation import CancellationToken, LatestRequests, cancellable_sleep
from ..errors import OperationCancelled
from ..events import EventSource, PropertyChange
from ..model import ElementIri, LinkKey, PropertyTypeIri
from ..providers.base import EntityValidationEvent, RelationValidationEvent, ValidationProvider
from .state import AuthoringState

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


@dataclass(frozen=True)
class ValidationItem:
    message: str
    severity: Severity = Severity.ERROR
    property_type: PropertyTypeIri | None = None

    def to_dict(self) -> dict:
        d = {"message": self.message, "severity": self.severity.value}
        if self.property_type:
            d["propertyType"] = self.property_type
        return d


@dataclass(frozen=True)
class ValidationResult:
    items: tuple[ValidationItem, ...] = ()
    loading: bool = False

    @property
    def severity(self) -> Severity | None:
        """Highest severity among items, or None when there are none."""
        if not self.items:
            return None
        return max((item.severity for item in self.items), key=lambda s: s.rank)

    @classmethod
    def empty(cls) -> ValidationResult:
        return cls()


LOADING = ValidationResult(loading=True)


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class ValidationState:
    entities: Mapping[ElementIri, ValidationResult] = field(default_factory=lambda: _freeze({}))
    relations: Mapping[LinkKey, ValidationResult] = field(default_factory=lambda: _freeze({}))

    def set_entity_result(self, iri: ElementIri, result: ValidationResult) -> ValidationState:
        entities = dict(self.entities)
        entities[iri] = result
        return ValidationState(_freeze(entities), self.relations)

    def set_relation_result(self, key: LinkKey, result: ValidationResult) -> ValidationState:
        relations = dict(self.relations)
        relations[key] = result
        return ValidationState(self.entities, _freeze(relations))

    def clear_entity(self, iri: ElementIri) -> ValidationState:
        if iri not in self.entities:
            return self
        entities = dict(self.entities)
        del entities[iri]
        return ValidationState(_freeze(entities), self.relations)

    def clear_relation(self, key: LinkKey) -> ValidationState:
        if key not in self.relations:
            return self
        relations = dict(self.relations)
        del relations[key]
        return ValidationState(self.entities, _freeze(relations))


def changed_validation_targets(
    previous: AuthoringState,
    current: AuthoringState,
) -> tuple[set[ElementIri], set[LinkKey]]:
    """Entity IRIs and relation keys whose authoring event was replaced, added or removed."""
    entities = {
        iri
        for iri in set(previous.entities) | set(current.entities)
        if previous.entities.get(iri) is not current.entities.get(iri)
    }
    relations = {
        key
        for key in set(previous.relations) | set(current.relations)
        if previous.relations.get(key) is not current.relations.get(key)
    }
    # A changed relation can change the verdict on its source entity.
    entities.update(key.source_id for key in relations)
    return entities, relations


class ValidationPipeline:
    """Runs provider validation per key and owns the resulting ValidationState."""

    def __init__(self, provider: ValidationProvider | None = None, *, delay: float = 0.0) -> None:
        self.provider = provider
        self.delay = delay
        self.events = EventSource()
        self._state = ValidationState()
        self._requests: LatestRequests[tuple[str, Hashable]] = LatestRequests()
        self._tasks: set[asyncio.Task] = set()
        self._scheduled: dict[tuple[str, Hashable], set[asyncio.Task]] = {}

    @property
    def state(self) -> ValidationState:
        return self._state

    def set_state(self, state: ValidationState) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        self.events.trigger("change_validation_state", PropertyChange(source=self, previous=previous))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def validate_entity(
        self,
        event: EntityValidationEvent,
        token: CancellationToken | None = None,
    ) -> ValidationResult | None:
        """Validate one entity; returns the applied result, or None if superseded or cancelled."""
        iri = event.target.id
        return await self._run(
            ("entity", iri),
            token,
            lambda t: self.provider.validate_entity(event, t),  # type: ignore[union-attr]
            lambda result: self.set_state(self._state.set_entity_result(iri, result)),
            lambda: self._state.entities.get(iri),
            lambda previous: self.set_state(
                self._state.set_entity_result(iri, previous) if previous is not None else self._state.clear_entity(iri)
            ),
            "Failed to validate entity",
        )

    async def validate_relation(
        self,
        event: RelationValidationEvent,
        token: CancellationToken | None = None,
    ) -> ValidationResult | None:
        key = event.target.key
        return await self._run(
            ("relation", key),
            token,
            lambda t: self.provider.validate_relation(event, t),  # type: ignore[union-attr]
            lambda result: self.set_state(self._state.set_relation_result(key, result)),
            lambda: self._state.relations.get(key),
            lambda previous: self.set_state(
                self._state.set_relation_result(key, previous) if previous is not None else self._state.clear_relation(key)
            ),
            "Failed to validate relation",
        )

    async def _run(self, key, token, call, apply, current, restore, failure_message) -> ValidationResult | None:
        if self.provider is None:
            return None
        previous = current()
        if previous is not None and previous.loading:
            previous = None
        request = self._requests.issue(key, parent=token)
        apply(LOADING)

        try:
            if self.delay > 0:
                await cancellable_sleep(self.delay, request)
            request.raise_if_cancelled()
            items = await call(request)
        except OperationCancelled:
            logger.debug("Validation of %r cancelled", key)
            self._abandon(key, request, current, restore, previous)
            return None
        except Exception:
            if not self._requests.is_current(key, request):
                self._abandon(key, request, current, restore, previous)
                return None
            logger.error("%s %r", failure_message, key[1], exc_info=True)
            items = [ValidationItem(failure_message, Severity.ERROR)]

        if not self._requests.is_current(key, request):
            logger.debug("Dropping superseded validation result for %r", key)
            self._abandon(key, request, current, restore, previous)
            return None
        self._requests.complete(key, request)
        result = ValidationResult(items=tuple(items), loading=False)
        apply(result)
        return result

    def _abandon(self, key, request: CancellationToken, current, restore, previous: ValidationResult | None) -> None:
        # Cancelled without a newer request: drop the loading marker.
        if self._requests.is_latest(key, request):
            self._requests.complete(key, request)
            restore(previous)
            return
        # cancel_all() leaves no token for the key, so nothing newer will replace the marker.
        marker = current()
        if not self._requests.is_pending(key) and marker is not None and marker.loading:
            restore(previous)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_entity(self, event: EntityValidationEvent) -> asyncio.Task | None:
        return self._schedule(("entity", event.target.id), self.validate_entity(event))

    def schedule_relation(self, event: RelationValidationEvent) -> asyncio.Task | None:
        return self._schedule(("relation", event.target.key), self.validate_relation(event))

    def _schedule(self, key: tuple[str, Hashable], coro) -> asyncio.Task | None:
        if self.provider is None:
            coro.close()
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; validation not scheduled")
            coro.close()
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        self._scheduled.setdefault(key, set()).add(task)
        task.add_done_callback(lambda t: self._task_done(key, t))
        return task

    def _task_done(self, key: tuple[str, Hashable], task: asyncio.Task) -> None:
        self._tasks.discard(task)
        tasks = self._scheduled.get(key)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._scheduled[key]

    async def drain(self) -> None:
        """Wait until every scheduled validation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        self._requests.cancel_all()

    def forget_entity(self, iri: ElementIri) -> None:
        """Drop the result for `iri` and stop any validation of it still queued or running."""
        self._stop(("entity", iri))
        self.set_state(self._state.clear_entity(iri))

    def forget_relation(self, key: LinkKey) -> None:
        self._stop(("relation", key))
        self.set_state(self._state.clear_relation(key))

    def _stop(self, key: tuple[str, Hashable]) -> None:
        for task in self._scheduled.pop(key, ()):
            task.cancel()
        self._requests.cancel(key)
