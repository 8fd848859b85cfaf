import datetime as dt

import pytest

import date_combo as dc


def test_month_offset_clamps_day():
    assert dc.offset_date_by_months(dt.date(2024, 1, 31), 1) == dt.date(2024, 2, 29)
    assert dc.offset_date_by_months(dt.date(2023, 1, 31), 1) == dt.date(2023, 2, 28)
    assert dc.offset_date_by_months(dt.date(2024, 3, 31), -1) == dt.date(2024, 2, 29)
    assert dc.offset_date_by_months(dt.date(2024, 12, 15), 1) == dt.date(2025, 1, 15)
    assert dc.offset_date_by_months(dt.date(2024, 1, 15), -13) == dt.date(2022, 12, 15)


@pytest.mark.parametrize('start', [dt.date(2024, 2, 26), dt.date(2023, 12, 30), dt.date(2024, 3, 5)])
def test_week_offset_is_seven_days(start):
    assert (dc.navigate(start, 'down') - start).days == 7
    assert (start - dc.navigate(start, 'up')).days == 7
    assert dc.navigate(start, 'left') == start - dt.timedelta(days=1)
    assert dc.navigate(start, 'right') == start + dt.timedelta(days=1)


def test_navigate_from_today_when_empty(pinned_today):
    assert dc.navigate(None, 'pagedown') == dt.date(2024, 8, 1)
    assert dc.navigate(None, 'pageup') == dt.date(2024, 6, 1)
    assert dc.navigate(None, 'right') == dt.date(2024, 7, 2)


def test_page_down_with_no_date(combo):
    combo.open()
    assert combo.keydown(dc.KeyStroke('pagedown')) is True
    assert combo.date == dt.date(2024, 8, 1)
    assert combo.value == '8/1/2024'
    assert combo.date_priority is True


def test_navigation_methods_move_the_date(combo):
    combo.date = dt.date(2024, 1, 31)
    combo.page_down()
    assert combo.date == dt.date(2024, 2, 29)
    combo.page_up()
    assert combo.date == dt.date(2024, 1, 29)
    combo.go_down()
    combo.go_right()
    assert combo.date == dt.date(2024, 2, 6)
    combo.go_up()
    combo.go_left()
    assert combo.date == dt.date(2024, 1, 29)


def test_navigation_while_editing_defers_text(combo):
    combo.focus()
    combo.open()
    combo.value = '3/4/2024'
    combo.keydown(dc.KeyStroke('right', ctrl=True, shift=True))
    assert combo.date == dt.date(2024, 3, 5)
    assert combo.value == '3/4/2024'
    combo.keydown(dc.KeyStroke('enter'))
    assert combo.value == '3/5/2024'


def test_offsets_stop_at_calendar_limits():
    assert dc.offset_date_by_months(dt.date(9999, 12, 31), 1) == dt.date.max
    assert dc.offset_date_by_months(dt.date(1, 1, 15), -1) == dt.date.min
    assert dc.offset_date_by_days(dt.date(9999, 12, 30), 7) == dt.date.max
    assert dc.offset_date_by_days(dt.date(1, 1, 2), -7) == dt.date.min


def test_paging_past_last_date_stays_put(combo):
    combo.date = dt.date(9999, 12, 31)
    combo.open()
    assert combo.keydown(dc.KeyStroke('pagedown')) is True
    assert combo.date == dt.date(9999, 12, 31)
    assert combo.keydown(dc.KeyStroke('right', ctrl=True, shift=True)) is True
    assert combo.date == dt.date(9999, 12, 31)
    combo.keydown(dc.KeyStroke('pageup'))
    assert combo.date == dt.date(9999, 11, 30)
