"""Unit tests for the render pipeline."""

import datetime

import pytest

from lumen_calendar.calendar.models import FilterState
from lumen_calendar.domain.pipeline import (
    DayGroupingStage,
    ExpansionStage,
    FilterStage,
    RenderContext,
    RenderPipeline,
    StageResult,
    render_view,
)

pytestmark = pytest.mark.unit

JUNE_1 = datetime.date(2024, 6, 1)


class ExplodingStage:
    @property
    def name(self) -> str:
        return "Exploding"

    def process(self, context):
        raise RuntimeError("boom")


class CountingStage:
    def __init__(self):
        self.calls = 0

    @property
    def name(self) -> str:
        return "Counting"

    def process(self, context):
        self.calls += 1
        return StageResult(stage_name=self.name)


class TestRenderView:
    @pytest.mark.smoke
    def test_search_proveedor_in_week_view_shows_one_event(self, seeded_events):
        view = render_view(seeded_events, JUNE_1, "week", FilterState(term="proveedor"))

        assert view.success
        assert view.visible_count == 1
        assert view.events[0].title == "Llamada con proveedor"

    def test_month_view_has_42_days(self, seeded_events):
        view = render_view(seeded_events, JUNE_1, "month")

        assert len(view.days) == 42
        assert view.visible_count == 2

    def test_day_view_groups_and_positions_events(self, seeded_events):
        view = render_view(seeded_events, JUNE_1, "day")

        schedule = view.day(JUNE_1)
        assert schedule is not None
        assert [p.event.id for p in schedule.positioned] == ["1"]
        assert schedule.positioned[0].start_minute == 540

    def test_events_sorted_by_start(self, make_event):
        events = [
            make_event("late", "2024-06-03T15:00", "2024-06-03T16:00"),
            make_event("early", "2024-06-03T08:00", "2024-06-03T09:00"),
        ]

        view = render_view(events, datetime.date(2024, 6, 3), "day")

        assert [e.id for e in view.events] == ["early", "late"]

    def test_recurring_event_expands_into_week(self, make_event):
        standup = make_event(
            "standup",
            "2024-05-01T09:00",
            "2024-05-01T09:15",
            recurrence={"frequency": "daily"},
        )

        view = render_view([standup], datetime.date(2024, 6, 5), "week")

        assert view.visible_count == 7
        assert all(not day.is_empty for day in view.days)

    def test_all_day_events_stay_off_the_grid(self, make_event):
        holiday = make_event(
            "holiday",
            "2024-06-03T00:00",
            "2024-06-03T23:59:59.999999",
            all_day=True,
        )

        view = render_view([holiday], datetime.date(2024, 6, 3), "day")

        schedule = view.day(datetime.date(2024, 6, 3))
        assert [e.id for e in schedule.all_day] == ["holiday"]
        assert schedule.positioned == []

    def test_view_serializes_to_json(self, seeded_events):
        payload = render_view(seeded_events, JUNE_1, "week").model_dump(mode="json")

        assert payload["view_mode"] == "week"
        assert payload["visible_count"] == 2
        assert "timed" not in payload["days"][0]


class TestStages:
    def test_expansion_stage_writes_expanded_list(self, seeded_events):
        context = RenderContext.for_view(seeded_events, JUNE_1, "month")

        result = ExpansionStage().process(context)

        assert result.events_in == 2
        assert len(context.expanded) == 2

    def test_filter_stage_uses_context_filters(self, seeded_events):
        context = RenderContext.for_view(seeded_events, JUNE_1, "month", FilterState(owner="Luis"))
        context.expanded = list(seeded_events)

        FilterStage().process(context)

        assert [e.id for e in context.visible] == ["2"]

    def test_grouping_skips_events_anchored_before_range(self, make_event):
        event = make_event("long", "2024-05-20T09:00", "2024-06-04T10:00")
        context = RenderContext.for_view([event], datetime.date(2024, 6, 3), "day")
        context.visible = [event]

        result = DayGroupingStage().process(context)

        assert result.events_out == 0
        assert list(context.days) == [datetime.date(2024, 6, 3)]


class TestPipelineErrors:
    def test_failing_stage_yields_empty_view_with_error(self, seeded_events):
        counting = CountingStage()
        pipeline = RenderPipeline(stages=[ExpansionStage(), FilterStage(), ExplodingStage(), counting])

        view = pipeline.run(RenderContext.for_view(seeded_events, JUNE_1, "week"))

        assert not view.success
        assert "boom" in view.errors[0]
        assert view.events == []
        assert len(view.days) == 7
        assert counting.calls == 0

    def test_add_stage_appends(self):
        pipeline = RenderPipeline(stages=[])

        pipeline.add_stage(CountingStage())

        assert repr(pipeline) == "RenderPipeline(stages=['Counting'])"
