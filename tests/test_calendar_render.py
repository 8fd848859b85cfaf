import datetime as dt

import date_combo as dc


def text_of(fragments):
    return ''.join(text for _, text in fragments)


def test_cell_helpers_handle_unicode():
    text = '你好世界abc'
    truncated = dc._truncate(text, 6)
    assert truncated.endswith('…')
    assert dc._display_width(truncated) <= 6
    assert dc._pad_display('ab', 6, align='center') == '  ab  '
    assert dc._pad_display('abc', 6, align='right') == '   abc'
    assert dc._display_width(dc._pad_display('你', 4)) == 4


def test_day_cell_markers():
    day = dt.date(2024, 7, 4)
    assert dc.CalendarDay(day, selected=True).fragment() == ('class:calendar.selected', '[ 4]')
    assert dc.CalendarDay(day, outside_month=True).fragment() == ('class:calendar.outside', '  4 ')
    assert dc.CalendarDay(day, is_today=True).fragment() == ('class:calendar.today', '< 4>')
    assert dc.CalendarDay(day).fragment() == ('class:calendar.day', '  4 ')


def test_month_grid_around_selected_date(combo, pinned_today):
    combo.date = dt.date(2024, 12, 25)
    fragments = combo.calendar_fragments()
    rendered = text_of(fragments)
    assert 'December 2024' in rendered
    assert '[25]' in rendered
    assert 'Today' in rendered
    header = rendered.splitlines()[1]
    # en_US weeks start on Sunday.
    assert header.split()[0] == 'Sun'


def test_month_grid_uses_today_when_empty(combo, pinned_today):
    rendered = text_of(combo.calendar_fragments())
    assert 'July 2024' in rendered
    assert '< 1>' in rendered
    assert '[' not in rendered


def test_grid_follows_locale_and_part_settings(combo):
    combo.date = dt.date(2024, 12, 25)
    combo.locale = 'de_DE'
    combo.days_of_week_format = 'narrow'
    combo.month_format = 'short'
    lines = text_of(combo.calendar_fragments(reference=dt.date(2024, 12, 1))).splitlines()
    # German weeks start on Monday.
    assert lines[1].split()[0] == 'M'
    assert '2024' in lines[0]
    assert 'Dezember' not in lines[0]


def test_custom_day_part_is_used(combo):
    class StarDay(dc.CalendarDay):
        def fragment(self):
            style, text = super().fragment()
            return (style, text.replace('[', '*').replace(']', '*'))

    combo.day_part_type = StarDay
    combo.date = dt.date(2024, 12, 25)
    rendered = text_of(combo.calendar_fragments(reference=dt.date(2024, 12, 1)))
    assert '*25*' in rendered


def test_custom_today_button(combo):
    class QuietButton(dc.TodayButton):
        def fragments(self):
            return [('', f'[{self.locale}]')]

    combo.today_button_part_type = QuietButton
    assert text_of(combo.calendar_fragments()).endswith('[en_US]')


def test_field_and_status_text(combo):
    combo.date = dt.date(2024, 12, 25)
    assert text_of(dc.field_fragments(combo)).startswith('Date: 12/25/2024')
    combo.focus()
    styles = [style for style, _ in dc.field_fragments(combo)]
    assert 'class:field.text.selected' in styles
    status = dc.status_text(combo, 'Editing')
    assert '2024-12-25' in status
    assert 'date wins' in status
    assert status.endswith('Editing')
