"""Calendar view controller.

Holds the state behind a calendar screen (selected date, view mode, filter
facets and the local copy of the event collection) and re-renders the view
through the RenderPipeline after every change.

Mutations are optimistic. Each one is applied locally first and tracked as a
PendingMutation while the store request is in flight:

    pending -> confirmed     store accepted; its canonical event replaces ours
    pending -> rolled_back   store rejected or raised; the local change is undone

Store calls are awaited with a timeout. A timeout does not cancel the call:
the mutation stays pending and settles whenever the store answers.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from lumen_calendar.calendar.datetime_utils import today as local_today
from lumen_calendar.calendar.models import CalendarEvent, CalendarMetadata, FilterState, ViewMode
from lumen_calendar.core.event_store import (
    EventInput,
    EventStore,
    FieldErrors,
    StoreResult,
    build_canonical_event,
    event_input_data,
    validate_event_input,
)
from lumen_calendar.core.live_updates import (
    ActivityUpdate,
    CalendarAction,
    CalendarUpdate,
    LiveUpdateChannel,
    Subscription,
)
from lumen_calendar.domain import navigation
from lumen_calendar.domain.event_filter import derive_calendars, unique_owners, unique_participants
from lumen_calendar.domain.pipeline import RenderContext, RenderedView, RenderPipeline

logger = logging.getLogger(__name__)

OPTIMISTIC_ID_PREFIX = "optimistic-"
DUPLICATE_SUFFIX = " (copia)"

ViewListener = Callable[[RenderedView], None]


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass
class PendingMutation:
    """Bookkeeping for one optimistic change.

    ``previous`` is the value to restore on rollback (None for creates) and
    ``optimistic`` the value applied locally (None for deletes).
    """

    id: str
    kind: MutationKind
    event_id: str
    previous: Optional[CalendarEvent] = None
    optimistic: Optional[CalendarEvent] = None
    state: MutationState = MutationState.PENDING
    result_event: Optional[CalendarEvent] = None
    errors: FieldErrors = field(default_factory=dict)
    task: Optional[asyncio.Future[StoreResult]] = None

    def outcome(self, timed_out: bool = False) -> MutationOutcome:
        event = self.result_event if self.state == MutationState.CONFIRMED else self.optimistic
        return MutationOutcome(
            mutation_id=self.id,
            kind=self.kind,
            state=self.state,
            event=event,
            errors=dict(self.errors),
            timed_out=timed_out,
        )


@dataclass
class MutationOutcome:
    """What a mutating intent reports back to its caller."""

    mutation_id: str
    kind: MutationKind
    state: MutationState
    event: Optional[CalendarEvent] = None
    errors: FieldErrors = field(default_factory=dict)
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.state == MutationState.CONFIRMED


@dataclass
class ControllerConfig:
    """Controller settings."""

    store_timeout_seconds: float = 10.0
    default_view: str = ViewMode.MONTH.value

    @classmethod
    def from_settings(cls, settings: Any) -> ControllerConfig:
        return cls(
            store_timeout_seconds=float(getattr(settings, "store_timeout_seconds", 10.0)),
            default_view=str(getattr(settings, "default_view", ViewMode.MONTH.value)),
        )


class CalendarViewController:
    """State holder and intent handler for a calendar view."""

    def __init__(
        self,
        store: EventStore,
        channel: Optional[LiveUpdateChannel] = None,
        settings: Any = None,
        initial_events: Optional[list[CalendarEvent]] = None,
        today: Callable[[], datetime.date] = local_today,
        selected_date: Optional[datetime.date] = None,
        view_mode: Optional[Union[ViewMode, str]] = None,
    ):
        """Initialize controller.

        Args:
            store: Event persistence backend
            channel: Live update channel to subscribe to (optional)
            settings: Configuration object (timeouts, layout geometry, caps)
            initial_events: Events to show before the first store load
            today: Provider of the current local date
            selected_date: Initial date (defaults to today)
            view_mode: Initial view mode (defaults to settings.default_view)
        """
        self.store = store
        self.config = ControllerConfig.from_settings(settings)
        self._today = today
        self._pipeline = RenderPipeline(settings)

        self.selected_date: datetime.date = selected_date or today()
        self.view_mode: str = ViewMode(view_mode or self.config.default_view).value
        self.filters = FilterState()

        self._events: dict[str, CalendarEvent] = {}
        for event in initial_events or []:
            self._events[event.id] = event

        self._mutations: dict[str, PendingMutation] = {}
        self._listeners: list[ViewListener] = []
        self._closed = False

        self._subscription: Optional[Subscription] = None
        if channel is not None:
            self._subscription = channel.subscribe(self.apply_live_update)

        self.view: RenderedView = self._render()

    # ------------------------------------------------------------------
    # Read-side state
    # ------------------------------------------------------------------

    @property
    def events(self) -> list[CalendarEvent]:
        """Snapshot of the local (unexpanded) event collection."""
        return list(self._events.values())

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_mutations(self) -> list[PendingMutation]:
        return list(self._mutations.values())

    @property
    def visible_range(self) -> tuple[datetime.datetime, datetime.datetime]:
        return navigation.visible_range(self.selected_date, self.view_mode)

    @property
    def owners(self) -> list[str]:
        return unique_owners(self._events.values())

    @property
    def participants(self) -> list[str]:
        return unique_participants(self._events.values())

    @property
    def calendars(self) -> list[CalendarMetadata]:
        return derive_calendars(list(self._events.values()))

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        return self._events.get(event_id)

    def week_days(self) -> list[datetime.date]:
        return navigation.week_days(self.selected_date)

    def month_matrix(self) -> list[datetime.date]:
        return navigation.month_matrix(self.selected_date)

    # ------------------------------------------------------------------
    # View listeners
    # ------------------------------------------------------------------

    def add_view_listener(self, listener: ViewListener) -> Callable[[], None]:
        """Register a callback invoked with every new RenderedView.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _render(self) -> RenderedView:
        context = RenderContext.for_view(
            self._events.values(), self.selected_date, self.view_mode, self.filters
        )
        return self._pipeline.run(context)

    def _refresh(self) -> None:
        self.view = self._render()
        for listener in list(self._listeners):
            try:
                listener(self.view)
            except Exception:
                logger.exception("View listener failed")

    # ------------------------------------------------------------------
    # Navigation intents
    # ------------------------------------------------------------------

    def select_date(self, date: datetime.date) -> None:
        self.selected_date = date
        self._refresh()

    def set_view_mode(self, view_mode: Union[ViewMode, str]) -> None:
        self.view_mode = ViewMode(view_mode).value
        self._refresh()

    def navigate(self, step: int) -> None:
        """Move ``step`` days, weeks or months according to the view mode."""
        self.selected_date = navigation.shift_date(self.selected_date, self.view_mode, step)
        self._refresh()

    def go_to_today(self) -> None:
        self.selected_date = self._today()
        self._refresh()

    # ------------------------------------------------------------------
    # Filter intents
    # ------------------------------------------------------------------

    def _set_filters(self, **changes: Any) -> None:
        self.filters = self.filters.model_copy(update=changes)
        self._refresh()

    def set_search_term(self, term: str) -> None:
        self._set_filters(term=term)

    def set_owner(self, owner: Optional[str]) -> None:
        self._set_filters(owner=owner or None)

    def set_participant(self, participant: Optional[str]) -> None:
        self._set_filters(participant=participant or None)

    def set_date_range(
        self, start_date: Optional[datetime.date], end_date: Optional[datetime.date]
    ) -> None:
        self._set_filters(start_date=start_date, end_date=end_date)

    def toggle_calendar(self, calendar_id: str) -> None:
        calendars = set(self.filters.calendars)
        if calendar_id in calendars:
            calendars.remove(calendar_id)
        else:
            calendars.add(calendar_id)
        self._set_filters(calendars=frozenset(calendars))

    def clear_filters(self) -> None:
        self.filters = FilterState()
        self._refresh()

    # ------------------------------------------------------------------
    # Store synchronization
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Replace the local collection with the store's events.

        Pending mutations are replayed on top of the stored events, so an
        in-flight create, update or delete stays visible until it settles.
        """
        stored = await self.store.list_events()
        events = {event.id: event for event in stored}
        for mutation in self._mutations.values():
            if mutation.kind == MutationKind.DELETE:
                events.pop(mutation.event_id, None)
            elif mutation.optimistic is not None:
                events[mutation.event_id] = mutation.optimistic
        self._events = events
        logger.info("Loaded %d events from store", len(stored))
        self._refresh()

    def apply_live_update(self, update: Union[CalendarUpdate, ActivityUpdate]) -> None:
        """Merge a pushed change into the local collection, keyed by event id.

        Pushes for events with an in-flight mutation are applied too; a later
        store confirmation still replaces them with the canonical event.
        """
        if self._closed:
            return
        if isinstance(update, ActivityUpdate):
            logger.debug("Ignoring activity update %s", update.payload.id)
            return

        change = update.payload
        if change.action == CalendarAction.DELETED.value:
            if self._events.pop(change.target_id, None) is None:
                logger.debug("Live delete for unknown event %s", change.target_id)
        elif change.event is not None:
            self._events[change.event.id] = change.event
        logger.debug("Applied live %s for event %s", change.action, change.target_id)
        self._refresh()

    def close(self) -> None:
        """Stop receiving live updates and notifying view listeners.

        In-flight store calls are not cancelled; they still settle their
        mutations.
        """
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()
        logger.debug("Controller closed with %d pending mutations", len(self._mutations))

    async def wait_for_mutation(self, mutation_id: str) -> Optional[MutationOutcome]:
        """Wait until a pending mutation settles.

        Returns:
            The final outcome, or None if no such mutation is pending
        """
        mutation = self._mutations.get(mutation_id)
        if mutation is None or mutation.task is None:
            return None
        await asyncio.wait([mutation.task])
        self._settle(mutation, mutation.task)
        return mutation.outcome()

    async def wait_idle(self) -> None:
        """Wait until every pending mutation has settled."""
        for mutation_id in list(self._mutations):
            await self.wait_for_mutation(mutation_id)

    # ------------------------------------------------------------------
    # Mutating intents
    # ------------------------------------------------------------------

    async def create_event(self, data: Union[EventInput, Mapping[str, Any]]) -> MutationOutcome:
        """Optimistically add an event and ask the store to create it."""
        validated, errors = validate_event_input(data)
        if validated is None:
            return self._rejected_locally(MutationKind.CREATE, "", errors)

        validated = validated.model_copy(update={"id": None})
        temp_id = f"{OPTIMISTIC_ID_PREFIX}{uuid.uuid4()}"
        optimistic = build_canonical_event(validated, temp_id)

        mutation = self._begin(MutationKind.CREATE, temp_id, previous=None, optimistic=optimistic)
        self._events[temp_id] = optimistic
        self._refresh()
        return await self._execute(mutation, self.store.create(validated))

    async def update_event(self, event_id: str, changes: Mapping[str, Any]) -> MutationOutcome:
        """Optimistically apply field changes to an event and persist them."""
        current = self._events.get(event_id)
        if current is None:
            return self._rejected_locally(MutationKind.UPDATE, event_id, {"id": ["Evento no encontrado"]})

        merged = event_input_data(current)
        merged.update(changes)
        merged["id"] = event_id
        validated, errors = validate_event_input(merged)
        if validated is None:
            return self._rejected_locally(MutationKind.UPDATE, event_id, errors)

        optimistic = build_canonical_event(validated, event_id)
        mutation = self._begin(MutationKind.UPDATE, event_id, previous=current, optimistic=optimistic)
        self._events[event_id] = optimistic
        self._refresh()
        return await self._execute(mutation, self.store.update(validated))

    async def move_event(self, event_id: str, delta: datetime.timedelta) -> MutationOutcome:
        """Shift an event (the master, for recurring ones) by ``delta``."""
        current = self._events.get(event_id)
        if current is None:
            return self._rejected_locally(MutationKind.UPDATE, event_id, {"id": ["Evento no encontrado"]})
        return await self.update_event(
            event_id, {"start": current.start + delta, "end": current.end + delta}
        )

    async def resize_event(self, event_id: str, delta: datetime.timedelta) -> MutationOutcome:
        """Move only the end of an event by ``delta``."""
        current = self._events.get(event_id)
        if current is None:
            return self._rejected_locally(MutationKind.UPDATE, event_id, {"id": ["Evento no encontrado"]})
        return await self.update_event(event_id, {"end": current.end + delta})

    async def duplicate_event(self, event_id: str) -> MutationOutcome:
        """Create a copy of an event with a fresh id."""
        current = self._events.get(event_id)
        if current is None:
            return self._rejected_locally(MutationKind.CREATE, event_id, {"id": ["Evento no encontrado"]})
        copy = event_input_data(current)
        copy.update(id=None, title=f"{current.title}{DUPLICATE_SUFFIX}")
        return await self.create_event(copy)

    async def delete_event(self, event_id: str) -> MutationOutcome:
        """Optimistically remove an event and ask the store to delete it."""
        current = self._events.get(event_id)
        if current is None:
            return self._rejected_locally(MutationKind.DELETE, event_id, {"id": ["Evento no encontrado"]})

        mutation = self._begin(MutationKind.DELETE, event_id, previous=current, optimistic=None)
        del self._events[event_id]
        self._refresh()
        return await self._execute(mutation, self.store.delete(event_id))

    # ------------------------------------------------------------------
    # Mutation state machine
    # ------------------------------------------------------------------

    def _begin(
        self,
        kind: MutationKind,
        event_id: str,
        previous: Optional[CalendarEvent],
        optimistic: Optional[CalendarEvent],
    ) -> PendingMutation:
        mutation = PendingMutation(
            id=str(uuid.uuid4()),
            kind=kind,
            event_id=event_id,
            previous=previous,
            optimistic=optimistic,
        )
        self._mutations[mutation.id] = mutation
        logger.debug("Mutation %s (%s %s) pending", mutation.id, kind.value, event_id)
        return mutation

    def _rejected_locally(self, kind: MutationKind, event_id: str, errors: FieldErrors) -> MutationOutcome:
        logger.info("%s of event %r rejected before reaching the store: %s", kind.value, event_id, errors)
        return MutationOutcome(
            mutation_id=str(uuid.uuid4()),
            kind=kind,
            state=MutationState.ROLLED_BACK,
            errors=errors,
        )

    async def _execute(
        self, mutation: PendingMutation, call: Awaitable[StoreResult]
    ) -> MutationOutcome:
        task = asyncio.ensure_future(call)
        mutation.task = task
        task.add_done_callback(lambda finished: self._settle(mutation, finished))

        # asyncio.wait leaves the store call running when the timeout expires
        done, _ = await asyncio.wait([task], timeout=self.config.store_timeout_seconds)
        if task not in done:
            logger.warning(
                "Store did not answer %s of event %s within %.1fs; mutation %s left pending",
                mutation.kind.value,
                mutation.event_id,
                self.config.store_timeout_seconds,
                mutation.id,
            )
            return mutation.outcome(timed_out=True)

        self._settle(mutation, task)
        return mutation.outcome()

    def _settle(self, mutation: PendingMutation, task: asyncio.Future[StoreResult]) -> None:
        if mutation.state != MutationState.PENDING or not task.done():
            return

        if task.cancelled():
            result = StoreResult.rejected({"store": ["Request cancelled"]})
        elif task.exception() is not None:
            error = task.exception()
            logger.error(
                "Store raised during %s of event %s: %s", mutation.kind.value, mutation.event_id, error
            )
            result = StoreResult.rejected({"store": [str(error)]})
        else:
            result = task.result()

        if result.success:
            self._confirm(mutation, result)
        else:
            self._rollback(mutation, result.errors)

        self._mutations.pop(mutation.id, None)
        if not self._closed:
            self._refresh()

    def _confirm(self, mutation: PendingMutation, result: StoreResult) -> None:
        mutation.state = MutationState.CONFIRMED
        mutation.result_event = result.event
        canonical = result.event

        if mutation.kind == MutationKind.CREATE:
            self._events.pop(mutation.event_id, None)
            if canonical is not None:
                self._events[canonical.id] = canonical
        elif mutation.kind == MutationKind.UPDATE and canonical is not None:
            self._events[canonical.id] = canonical

        logger.info("Mutation %s (%s) confirmed", mutation.id, mutation.kind.value)

    def _rollback(self, mutation: PendingMutation, errors: FieldErrors) -> None:
        mutation.state = MutationState.ROLLED_BACK
        mutation.errors = dict(errors)

        if mutation.kind == MutationKind.CREATE:
            self._events.pop(mutation.event_id, None)
        elif mutation.kind == MutationKind.UPDATE:
            # A newer edit or live push owns the entry now; leave it alone
            if self._events.get(mutation.event_id) == mutation.optimistic and mutation.previous:
                self._events[mutation.event_id] = mutation.previous
        elif mutation.kind == MutationKind.DELETE:
            if mutation.event_id not in self._events and mutation.previous is not None:
                self._events[mutation.event_id] = mutation.previous

        logger.warning(
            "Mutation %s (%s %s) rolled back: %s",
            mutation.id,
            mutation.kind.value,
            mutation.event_id,
            errors,
        )
