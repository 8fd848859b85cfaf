import datetime as dt

import pytest

import date_combo as dc


@pytest.mark.parametrize('name, expected', [
    ('c-s-left', dc.KeyStroke('left', ctrl=True, shift=True)),
    ('pagedown', dc.KeyStroke('pagedown')),
    ('s-down', dc.KeyStroke('down', shift=True)),
    ('c-t', dc.KeyStroke('t', ctrl=True)),
    ('c-m', dc.KeyStroke('enter')),
    ('escape', dc.KeyStroke('escape')),
])
def test_key_names_translate(name, expected):
    assert dc.KeyStroke.from_key(name) == expected


def test_key_enum_translates():
    from prompt_toolkit.keys import Keys

    assert dc.KeyStroke.from_key(Keys.ControlShiftUp) == dc.KeyStroke('up', ctrl=True, shift=True)
    assert dc.KeyStroke.from_key(Keys.PageUp) == dc.KeyStroke('pageup')


@pytest.mark.parametrize('key', dc.ARROW_KEYS)
def test_arrows_need_open_popup_and_both_modifiers(combo, key):
    combo.date = dt.date(2024, 5, 10)
    combo.open()
    assert combo.keydown(dc.KeyStroke(key, ctrl=True)) is False
    assert combo.keydown(dc.KeyStroke(key, shift=True)) is False
    assert combo.date == dt.date(2024, 5, 10)
    assert combo.keydown(dc.KeyStroke(key, ctrl=True, shift=True)) is True
    assert combo.date == dc.navigate(dt.date(2024, 5, 10), key)


def test_arrows_ignored_when_closed(combo):
    combo.date = dt.date(2024, 5, 10)
    assert combo.keydown(dc.KeyStroke('left', ctrl=True, shift=True)) is False
    assert combo.date == dt.date(2024, 5, 10)


def test_page_keys_ignored_when_closed(combo):
    assert combo.keydown(dc.KeyStroke('pagedown')) is False
    assert combo.date is None


def test_down_opens_escape_cancels_enter_commits(combo):
    assert combo.keydown(dc.KeyStroke('down')) is True
    assert combo.opened is True
    assert combo.keydown(dc.KeyStroke('down')) is False
    assert combo.keydown(dc.KeyStroke('escape')) is True
    assert combo.opened is False
    assert combo.close_result.canceled is True

    assert combo.keydown(dc.KeyStroke('down', alt=True)) is True
    assert combo.keydown(dc.KeyStroke('enter')) is True
    assert combo.close_result.canceled is False
    assert combo.keydown(dc.KeyStroke('enter')) is False


def test_unhandled_keys_reach_fallback(pinned_today):
    seen = []

    def fallback(stroke):
        seen.append(stroke)
        return stroke.key == 'f1'

    combo = dc.DateComboBox(locale='en_US', fallback_keydown=fallback)
    assert combo.keydown(dc.KeyStroke('f1')) is True
    assert combo.keydown(dc.KeyStroke('left', ctrl=True, shift=True)) is False
    assert [s.key for s in seen] == ['f1', 'left']

    combo.open()
    assert combo.keydown(dc.KeyStroke('pageup')) is True
    assert len(seen) == 2


def test_toggle(combo):
    combo.toggle()
    assert combo.opened is True
    combo.toggle()
    assert combo.opened is False
    assert combo.close_result == dc.CloseResult(canceled=False)
    combo.close(canceled=True)
    assert combo.close_result.canceled is False
