"""Unit tests for the exception hierarchy."""

import pytest

from lumen_calendar.core.exceptions import (
    ConfigError,
    EventStoreError,
    InvalidEventError,
    LumenCalendarError,
    MalformedLiveUpdateError,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "exc_class", [InvalidEventError, MalformedLiveUpdateError, EventStoreError, ConfigError]
)
def test_all_errors_share_base_class(exc_class):
    with pytest.raises(LumenCalendarError, match="detail"):
        raise exc_class("detail")


def test_base_error_is_not_caught_as_value_error():
    assert not issubclass(LumenCalendarError, ValueError)
