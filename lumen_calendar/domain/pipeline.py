"""Render pipeline for lumen_calendar views.

A render pass turns a snapshot of the event collection into what a calendar
view displays. Each pass runs the same sequence of stages:

- ExpansionStage: materialize recurring events inside the visible range
- FilterStage: apply the active filter facets and the visible window
- DayGroupingStage: bucket visible events by their start day
- LayoutStage: assign grid columns to each day's timed events

Usage:
    pipeline = RenderPipeline(settings)
    context = RenderContext.for_view(events, selected_date, "week", filters)
    view = pipeline.run(context)
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, computed_field

from lumen_calendar.calendar.models import CalendarEvent, FilterState, PositionedEvent, ViewMode
from lumen_calendar.calendar.recurrence import RecurrenceExpander
from lumen_calendar.domain.day_layout import DayLayoutEngine
from lumen_calendar.domain.event_filter import EventFilter
from lumen_calendar.domain.navigation import days_between, visible_range

logger = logging.getLogger(__name__)


class DaySchedule(BaseModel):
    """Events anchored to one calendar day."""

    date: datetime.date
    all_day: list[CalendarEvent] = Field(default_factory=list)
    timed: list[CalendarEvent] = Field(default_factory=list, exclude=True)
    positioned: list[PositionedEvent] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.all_day and not self.timed


class RenderedView(BaseModel):
    """Output of a render pass."""

    view_mode: ViewMode
    selected_date: datetime.date
    range_start: datetime.datetime
    range_end: datetime.datetime
    events: list[CalendarEvent] = Field(default_factory=list)
    days: list[DaySchedule] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def visible_count(self) -> int:
        return len(self.events)

    @property
    def success(self) -> bool:
        return not self.errors

    def day(self, date: datetime.date) -> Optional[DaySchedule]:
        for schedule in self.days:
            if schedule.date == date:
                return schedule
        return None


@dataclass
class RenderContext:
    """State passed between render stages.

    The collection is a tuple snapshot; stages never mutate it and instead
    write their output to the fields below.
    """

    events: tuple[CalendarEvent, ...]
    selected_date: datetime.date
    view_mode: str
    range_start: datetime.datetime
    range_end: datetime.datetime
    filters: FilterState = field(default_factory=FilterState)

    # Written by stages
    expanded: list[CalendarEvent] = field(default_factory=list)
    visible: list[CalendarEvent] = field(default_factory=list)
    days: dict[datetime.date, DaySchedule] = field(default_factory=dict)

    @classmethod
    def for_view(
        cls,
        events: Any,
        selected_date: datetime.date,
        view_mode: Any = ViewMode.MONTH,
        filters: Optional[FilterState] = None,
    ) -> RenderContext:
        """Build a context whose range is the visible window of the view."""
        mode = ViewMode(view_mode)
        range_start, range_end = visible_range(selected_date, mode)
        return cls(
            events=tuple(events),
            selected_date=selected_date,
            view_mode=mode.value,
            range_start=range_start,
            range_end=range_end,
            filters=filters or FilterState(),
        )


@dataclass
class StageResult:
    """Counters and messages reported by a single stage."""

    stage_name: str = ""
    events_in: int = 0
    events_out: int = 0
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("[%s] %s", self.stage_name, message)


class RenderStage(Protocol):
    """A single step of the render pipeline."""

    def process(self, context: RenderContext) -> StageResult:
        ...

    @property
    def name(self) -> str:
        ...


class ExpansionStage:
    """Replaces every event with its occurrences inside the visible range."""

    def __init__(self, expander: Optional[RecurrenceExpander] = None):
        self.expander = expander or RecurrenceExpander()

    @property
    def name(self) -> str:
        return "Expansion"

    def process(self, context: RenderContext) -> StageResult:
        result = StageResult(stage_name=self.name, events_in=len(context.events))
        expanded: list[CalendarEvent] = []
        for event in context.events:
            try:
                expanded.extend(self.expander.expand(event, context.range_start, context.range_end))
            except Exception as e:
                result.add_warning(f"Failed to expand event {event.id}: {e}")
        context.expanded = expanded
        result.events_out = len(expanded)
        return result


class FilterStage:
    """Keeps the occurrences that pass the active facets and the window."""

    @property
    def name(self) -> str:
        return "Filter"

    def process(self, context: RenderContext) -> StageResult:
        result = StageResult(stage_name=self.name, events_in=len(context.expanded))
        kept = EventFilter(context.filters).apply(
            context.expanded, context.range_start, context.range_end
        )
        kept.sort(key=lambda e: (e.start, e.end))
        context.visible = kept
        result.events_out = len(kept)
        return result


class DayGroupingStage:
    """Builds one DaySchedule per day of the range, keyed by start day."""

    @property
    def name(self) -> str:
        return "DayGrouping"

    def process(self, context: RenderContext) -> StageResult:
        result = StageResult(stage_name=self.name, events_in=len(context.visible))
        days = {
            day: DaySchedule(date=day) for day in days_between(context.range_start, context.range_end)
        }
        grouped = 0
        for event in context.visible:
            # Multi-day events that started before the range have no anchor day here
            schedule = days.get(event.start.date())
            if schedule is None:
                continue
            if event.all_day:
                schedule.all_day.append(event)
            else:
                schedule.timed.append(event)
            grouped += 1
        context.days = days
        result.events_out = grouped
        return result


class LayoutStage:
    """Positions each day's timed events on the time grid."""

    def __init__(self, engine: Optional[DayLayoutEngine] = None):
        self.engine = engine or DayLayoutEngine()

    @property
    def name(self) -> str:
        return "Layout"

    def process(self, context: RenderContext) -> StageResult:
        timed_total = sum(len(schedule.timed) for schedule in context.days.values())
        result = StageResult(stage_name=self.name, events_in=timed_total)
        positioned_total = 0
        for schedule in context.days.values():
            if not schedule.timed:
                continue
            layout = self.engine.layout(schedule.timed)
            schedule.positioned = sorted(layout.values(), key=lambda p: (p.start_minute, p.column))
            positioned_total += len(schedule.positioned)
            if len(layout) < len(schedule.timed):
                result.add_warning(
                    f"{len(schedule.timed) - len(layout)} events on {schedule.date} could not be positioned"
                )
        result.events_out = positioned_total
        return result


class RenderPipeline:
    """Runs the render stages in sequence over a RenderContext."""

    def __init__(self, settings: Any = None, stages: Optional[list[RenderStage]] = None):
        """Initialize pipeline.

        Args:
            settings: Optional configuration object; forwarded to the
                expander and the layout engine
            stages: Explicit stage list (defaults to the standard four)
        """
        if stages is None:
            stages = [
                ExpansionStage(RecurrenceExpander(settings)),
                FilterStage(),
                DayGroupingStage(),
                LayoutStage(DayLayoutEngine(settings)),
            ]
        self.stages: list[RenderStage] = list(stages)

    def add_stage(self, stage: RenderStage) -> RenderPipeline:
        self.stages.append(stage)
        logger.debug("Added stage to render pipeline: %s", stage.name)
        return self

    def run(self, context: RenderContext) -> RenderedView:
        """Execute all stages and assemble the rendered view.

        A stage that raises stops the pass; the returned view then carries the
        error and no events.
        """
        warnings: list[str] = []
        errors: list[str] = []

        for stage in self.stages:
            try:
                stage_result = stage.process(context)
            except Exception as e:
                logger.exception("Render stage %s failed", stage.name)
                errors.append(f"Stage {stage.name} raised exception: {e}")
                break

            logger.debug(
                "Stage %s completed: events_in=%d, events_out=%d, warnings=%d",
                stage.name,
                stage_result.events_in,
                stage_result.events_out,
                len(stage_result.warnings),
            )
            warnings.extend(stage_result.warnings)

        if errors:
            context.visible = []
            context.days = {
                day: DaySchedule(date=day) for day in days_between(context.range_start, context.range_end)
            }

        view = RenderedView(
            view_mode=context.view_mode,
            selected_date=context.selected_date,
            range_start=context.range_start,
            range_end=context.range_end,
            events=list(context.visible),
            days=list(context.days.values()),
            warnings=warnings,
            errors=errors,
        )
        logger.debug(
            "Rendered %s view for %s: %d visible events",
            view.view_mode,
            view.selected_date,
            view.visible_count,
        )
        return view

    def __repr__(self) -> str:
        stage_names = [stage.name for stage in self.stages]
        return f"RenderPipeline(stages={stage_names})"


def render_view(
    events: Any,
    selected_date: datetime.date,
    view_mode: Any = ViewMode.MONTH,
    filters: Optional[FilterState] = None,
    settings: Any = None,
) -> RenderedView:
    """Render a view in one call (convenience function)."""
    context = RenderContext.for_view(events, selected_date, view_mode, filters)
    return RenderPipeline(settings).run(context)
