#!/usr/bin/env python3
# date_combo: Terminal date entry field with a popup calendar
#
# Hotkeys
#   type         edit the date text (replaces the text right after it was reformatted)
#   Backspace    delete the last character
#   Tab          toggle focus on the text field (leaving it reformats the text)
#   Down         open the calendar popup
#   Enter        close the popup and keep the date
#   Esc          close the popup without committing the typed text
#   Ctrl-Shift + arrows   move the date by one day / one week (popup open)
#   PgUp/PgDn    move the date by one month (popup open)
#   Ctrl-T       pick today and close the popup
#   Ctrl-L       cycle through the configured locales
#   Ctrl-Q       quit (prints the chosen date)
#
# Config highlights
#   locale: de_DE
#   locales: [en_US, de_DE, ja_JP]
#   time_bias: future          # "9/1" means the next September 1st
#   date_format: {day: numeric, month: short, year: numeric}
#
# Notes
# - The text, the structured date and the locale formatter are kept consistent
#   by a small table of change rules evaluated to a fixed point per update.
# - Text that cannot be read as a date never clears a previously valid date.

from __future__ import annotations

import argparse
import calendar
import datetime as dt
import enum
import functools
import json
import logging
import os
import re
import sys
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

import yaml
from babel import Locale, UnknownLocaleError, default_locale
from babel import dates as babel_dates
from prompt_toolkit import Application
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import ConditionalContainer, Float, FloatContainer, HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style
from prompt_toolkit.utils import get_cwidth as _pt_get_cwidth
from prompt_toolkit.widgets import Frame


logger = logging.getLogger('date_combo')


# -----------------------------
# Format options
# -----------------------------

TIME_BIASES = ('future', 'past')
DAY_WIDTHS = {'numeric': 1, '2-digit': 2}
MONTH_WIDTHS = {'numeric': 1, '2-digit': 2, 'short': 3, 'long': 4, 'narrow': 5}
YEAR_WIDTHS = {'numeric': 1, '2-digit': 2}
FORMAT_OPTION_WIDTHS = {'day': DAY_WIDTHS, 'month': MONTH_WIDTHS, 'year': YEAR_WIDTHS}
DEFAULT_FORMAT_OPTIONS: Dict[str, str] = {'day': 'numeric', 'month': 'numeric', 'year': 'numeric'}
WEEKDAY_WIDTHS = {'long': 'wide', 'short': 'abbreviated', 'narrow': 'narrow'}
FALLBACK_LOCALE = 'en_US'


def normalize_locale(tag: Optional[str]) -> str:
    """Return Babel's identifier for ``tag`` (accepts ``en-US`` or ``en_US``).

    An empty tag means the environment's LC_TIME locale.
    """
    raw = (tag or '').strip()
    if not raw:
        return _environment_locale()
    try:
        return str(Locale.parse(raw.replace('-', '_')))
    except (UnknownLocaleError, ValueError) as exc:
        raise ValueError(f"Unknown locale {tag!r}") from exc


def _environment_locale() -> str:
    try:
        return str(Locale.parse(default_locale('LC_TIME') or FALLBACK_LOCALE))
    except (UnknownLocaleError, ValueError, TypeError):
        return FALLBACK_LOCALE


def normalize_format_options(options: Optional[Dict[str, Optional[str]]]) -> Dict[str, str]:
    """Validate ``{day, month, year}`` style tokens; keys set to None are dropped."""
    if options is None:
        return dict(DEFAULT_FORMAT_OPTIONS)
    if not isinstance(options, dict):
        raise ValueError(f"Date format options must be a mapping, got {options!r}")
    clean: Dict[str, str] = {}
    for key, value in options.items():
        widths = FORMAT_OPTION_WIDTHS.get(key)
        if widths is None:
            raise ValueError(f"Unknown date format option {key!r} (use day, month, year)")
        if value is None:
            continue
        if value not in widths:
            raise ValueError(f"Bad {key} format {value!r} (use {', '.join(widths)})")
        clean[key] = value
    if not clean:
        raise ValueError("Date format options must show at least one of day, month, year")
    return clean


def normalize_time_bias(time_bias: Optional[str]) -> Optional[str]:
    if time_bias is None or time_bias == '':
        return None
    if time_bias not in TIME_BIASES:
        raise ValueError(f"Bad time bias {time_bias!r} (use future or past)")
    return time_bias


def _check_choice(name: str, value: str, allowed: Iterable[str]) -> str:
    allowed = list(allowed)
    if value not in allowed:
        raise ValueError(f"Bad {name} {value!r} (use {', '.join(allowed)})")
    return value


# -----------------------------
# Format/parse adapter
# -----------------------------

_PATTERN_CACHE: Dict[Tuple[str, str], str] = {}
_VOCABULARY_CACHE: Dict[Tuple[str, str], '_ParseVocabulary'] = {}
_CHUNK_RE = re.compile(r"\d+|[^\W\d_]+")
_ISO_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")
TWO_DIGIT_YEAR_LOOKBACK = 80


def _skeleton(day: Optional[str], month: Optional[str], year: Optional[str]) -> str:
    parts: List[str] = []
    if year:
        parts.append('y' * YEAR_WIDTHS[year])
    if month:
        parts.append('M' * MONTH_WIDTHS[month])
    if day:
        parts.append('d' * DAY_WIDTHS[day])
    return ''.join(parts)


def _adjust_field_widths(pattern: str, widths: Dict[str, int]) -> str:
    tokens = []
    for kind, data in babel_dates.tokenize_pattern(pattern):
        if kind == 'field':
            char, count = data
            key = 'M' if char == 'L' else char
            # Numeric fields stay numeric and named fields stay named.
            if key in widths and (count >= 3) == (widths[key] >= 3):
                count = widths[key]
            tokens.append((kind, (char, count)))
        else:
            tokens.append((kind, data))
    return babel_dates.untokenize_pattern(tokens)


def pattern_for_skeleton(locale: str, skeleton: str) -> str:
    """Best CLDR pattern for ``skeleton`` with each field at the requested width."""
    key = (locale, skeleton)
    cached = _PATTERN_CACHE.get(key)
    if cached is not None:
        return cached
    loc = Locale.parse(locale)
    skeletons = loc.datetime_skeletons
    best = skeleton if skeleton in skeletons else babel_dates.match_skeleton(skeleton, skeletons)
    if best is None:
        logger.debug("No CLDR skeleton close to %s for %s; using short date", skeleton, locale)
        pattern = str(loc.date_formats['short'])
    else:
        pattern = str(skeletons[best])
    widths = dict(data for kind, data in babel_dates.tokenize_pattern(skeleton) if kind == 'field')
    pattern = _adjust_field_widths(pattern, widths)
    _PATTERN_CACHE[key] = pattern
    return pattern


@dataclass(frozen=True)
class DateTimeFormat:
    """Formatter handle for one locale and one set of day/month/year options."""

    locale: str
    day: Optional[str] = 'numeric'
    month: Optional[str] = 'numeric'
    year: Optional[str] = 'numeric'

    @property
    def pattern(self) -> str:
        return pattern_for_skeleton(self.locale, _skeleton(self.day, self.month, self.year))

    @property
    def parse_pattern(self) -> str:
        # Typed text may always carry a full date, whatever is rendered.
        return pattern_for_skeleton(
            self.locale,
            _skeleton(self.day or 'numeric', self.month or 'numeric', self.year or 'numeric'),
        )

    def options(self) -> Dict[str, str]:
        opts = {'day': self.day, 'month': self.month, 'year': self.year}
        return {k: v for k, v in opts.items() if v}


def date_time_format(locale: Optional[str], options: Optional[Dict[str, Optional[str]]] = None) -> DateTimeFormat:
    opts = normalize_format_options(options)
    return DateTimeFormat(
        locale=normalize_locale(locale),
        day=opts.get('day'),
        month=opts.get('month'),
        year=opts.get('year'),
    )


def format_date(date: Optional[dt.date], formatter: Optional[DateTimeFormat]) -> str:
    if date is None or formatter is None:
        return ''
    return babel_dates.format_date(date, format=formatter.pattern, locale=formatter.locale)


def _fold(word: str) -> str:
    return word.casefold().rstrip('.')


class _ParseVocabulary:
    """Field order and known words for reading text in one locale pattern."""

    def __init__(self, fields: Tuple[str, ...], months: Dict[str, int], ignorable: FrozenSet[str]):
        self.fields = fields
        self.months = months
        self.ignorable = ignorable


def _parse_vocabulary(formatter: DateTimeFormat) -> _ParseVocabulary:
    pattern = formatter.parse_pattern
    key = (formatter.locale, pattern)
    cached = _VOCABULARY_CACHE.get(key)
    if cached is not None:
        return cached

    fields: List[str] = []
    literal_words = set()
    for kind, data in babel_dates.tokenize_pattern(pattern):
        if kind == 'field':
            char = data[0]
            name = {'y': 'year', 'Y': 'year', 'u': 'year', 'M': 'month', 'L': 'month', 'd': 'day'}.get(char)
            if name and name not in fields:
                fields.append(name)
        else:
            literal_words.update(_fold(w) for w in _CHUNK_RE.findall(data) if not w[0].isdigit())

    months: Dict[str, int] = {}
    weekdays = set()
    for context in ('format', 'stand-alone'):
        for width in ('wide', 'abbreviated'):
            for num, name in babel_dates.get_month_names(width, context, formatter.locale).items():
                words = _CHUNK_RE.findall(name)
                if any(w[0].isdigit() for w in words):
                    # Names like "12月" carry the month as a number.
                    literal_words.update(_fold(w) for w in words if not w[0].isdigit())
                else:
                    months.setdefault(_fold(name), num)
        for width in ('wide', 'abbreviated', 'short'):
            weekdays.update(_fold(n) for n in babel_dates.get_day_names(width, context, formatter.locale).values())
    eras = set()
    for width in ('wide', 'abbreviated'):
        eras.update(_fold(n) for n in babel_dates.get_era_names(width, formatter.locale).values())

    vocab = _ParseVocabulary(tuple(fields), months, frozenset(literal_words | weekdays | eras))
    _VOCABULARY_CACHE[key] = vocab
    return vocab


def _shift_years(date: dt.date, years: int) -> dt.date:
    year = date.year + years
    day = min(date.day, calendar.monthrange(year, date.month)[1])
    return date.replace(year=year, day=day)


def _infer_year(month: int, day: int, time_bias: Optional[str], current: dt.date) -> Optional[dt.date]:
    try:
        candidate = dt.date(current.year, month, day)
        if time_bias == 'future' and candidate < current:
            candidate = _shift_years(candidate, 1)
        elif time_bias == 'past' and candidate > current:
            candidate = _shift_years(candidate, -1)
    except (OverflowError, ValueError):
        return None
    return candidate


def _expand_short_year(raw: str, current: dt.date) -> int:
    """Place a one- or two-digit year in the century window ending 20 years after ``current``."""
    start = current.year - TWO_DIGIT_YEAR_LOOKBACK
    year = start - start % 100 + int(raw)
    if year < start:
        year += 100
    return year


def parse_date(
    text: Optional[str],
    formatter: Optional[DateTimeFormat],
    time_bias: Optional[str] = None,
    reference: Optional[dt.date] = None,
) -> Optional[dt.date]:
    """Read ``text`` as a date using the formatter's locale conventions.

    Month/day text without a year gets the current year, moved one year
    forward (``time_bias='future'``) or back (``'past'``) so the result lies on
    the requested side of ``reference`` (default: today). Two-digit years fall in
    the century window that ends 20 years after ``reference``. Returns None
    for anything that is not a real calendar date.
    """
    if formatter is None or not text or not text.strip():
        return None
    iso = _ISO_RE.match(text)
    if iso:
        try:
            return dt.date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except (OverflowError, ValueError):
            return None

    vocab = _parse_vocabulary(formatter)
    numbers: List[str] = []
    month_by_name: Optional[int] = None
    for chunk in _CHUNK_RE.findall(text):
        if chunk[0].isdigit():
            numbers.append(chunk)
            continue
        word = _fold(chunk)
        if word in vocab.months:
            if month_by_name is not None:
                return None
            month_by_name = vocab.months[word]
        elif word not in vocab.ignorable:
            return None

    fields = [f for f in vocab.fields if not (f == 'month' and month_by_name is not None)]
    has_year = len(numbers) == len(fields)
    if not has_year:
        fields = [f for f in fields if f != 'year']
        if len(numbers) != len(fields):
            return None
    values = dict(zip(fields, numbers))
    current = reference or today()
    try:
        month = month_by_name if month_by_name is not None else int(values['month'])
        day = int(values['day'])
        if not has_year:
            return _infer_year(month, day, time_bias, current)
        raw_year = values['year']
        year = _expand_short_year(raw_year, current) if len(raw_year) <= 2 else int(raw_year)
        return dt.date(year, month, day)
    except (KeyError, OverflowError, ValueError):
        return None


# -----------------------------
# Calendar math
# -----------------------------

NAVIGATION_OFFSETS: Dict[str, Tuple[int, int]] = {
    # direction: (days, months)
    'left': (-1, 0),
    'right': (1, 0),
    'up': (-7, 0),
    'down': (7, 0),
    'pageup': (0, -1),
    'pagedown': (0, 1),
}


def today() -> dt.date:
    return dt.date.today()


def offset_date_by_days(date: dt.date, days: int) -> dt.date:
    """Move by whole days; stops at the first or last representable date."""
    try:
        return date + dt.timedelta(days=days)
    except OverflowError:
        return dt.date.max if days > 0 else dt.date.min


def offset_date_by_months(date: dt.date, months: int) -> dt.date:
    """Move by calendar months, clamping the day to the target month's length."""
    month = date.month - 1 + months
    year = date.year + month // 12
    month = month % 12 + 1
    if year > dt.MAXYEAR:
        return dt.date.max
    if year < dt.MINYEAR:
        return dt.date.min
    day = min(date.day, calendar.monthrange(year, month)[1])
    return dt.date(year, month, day)


def navigate(date: Optional[dt.date], direction: str) -> dt.date:
    days, months = NAVIGATION_OFFSETS[direction]
    current = date or today()
    if months:
        current = offset_date_by_months(current, months)
    if days:
        current = offset_date_by_days(current, days)
    return current


# -----------------------------
# Reactive state
# -----------------------------

class ReconciliationError(RuntimeError):
    """Change rules kept producing updates without settling."""


class StateSnapshot:
    """Read-only attribute view of the state record at one point in time."""

    __slots__ = ('_fields',)

    def __init__(self, fields: Dict[str, object]):
        self._fields = dict(fields)

    def __getattr__(self, name: str):
        if name == '_fields':
            raise AttributeError(name)
        try:
            return self._fields[name]
        except KeyError:
            raise AttributeError(name) from None

    def get(self, name: str, default: object = None) -> object:
        return self._fields.get(name, default)

    def as_dict(self) -> Dict[str, object]:
        return dict(self._fields)


Rule = Callable[[StateSnapshot, FrozenSet[str]], Optional[Dict[str, object]]]
_MISSING = object()


class ReactiveState:
    """Field store that reruns change rules after every update until nothing changes.

    Each round applies the pending changes, then calls every rule watching a
    field changed in that round with a snapshot taken before any rule ran and
    the set of all fields changed so far in the batch. Rule outputs become the
    next round's changes.
    """

    MAX_ROUNDS = 16

    def __init__(self) -> None:
        self._fields: Dict[str, object] = {}
        self._rules: List[Tuple[FrozenSet[str], Rule]] = []
        self.last_changed: FrozenSet[str] = frozenset()

    def on_change(self, fields: Iterable[str], rule: Rule) -> None:
        self._rules.append((frozenset(fields), rule))

    def get_state(self) -> StateSnapshot:
        return StateSnapshot(self._fields)

    def _differing(self, changes: Dict[str, object]) -> Dict[str, object]:
        return {k: v for k, v in changes.items() if self._fields.get(k, _MISSING) != v}

    def _run_rules(self, trigger: FrozenSet[str], changed: FrozenSet[str]) -> Dict[str, object]:
        snapshot = StateSnapshot(self._fields)
        pending: Dict[str, object] = {}
        for fields, rule in self._rules:
            if fields & trigger:
                result = rule(snapshot, changed)
                if result:
                    pending.update(result)
        return pending

    def set_state(self, changes: Dict[str, object]) -> FrozenSet[str]:
        changed: set = set()
        pending = self._differing(changes)
        rounds = 0
        while pending:
            rounds += 1
            if rounds > self.MAX_ROUNDS:
                raise ReconciliationError(f"State did not settle; still changing {sorted(pending)}")
            self._fields.update(pending)
            changed.update(pending)
            pending = self._differing(self._run_rules(frozenset(pending), frozenset(changed)))
        self.last_changed = frozenset(changed)
        if changed:
            logger.debug("State batch settled in %d round(s): %s", rounds, ', '.join(sorted(changed)))
        return self.last_changed

    def derive(self, changed: Iterable[str]) -> Dict[str, object]:
        """Dry run: what the rules would still change for ``changed``."""
        changed = frozenset(changed)
        return self._differing(self._run_rules(changed, changed))


# -----------------------------
# Reconciliation rules
# -----------------------------

class DateSource(enum.Enum):
    """Who last set the date; decides whether date or text wins on a format change."""

    NONE = 'none'
    EXTERNAL = 'external'
    USER_EDIT = 'user-edit'
    CALENDAR_PICK = 'calendar-pick'


PRIORITY_SOURCES = frozenset({DateSource.EXTERNAL, DateSource.CALENDAR_PICK})


@dataclass(frozen=True)
class CloseResult:
    canceled: bool = False


def has_date_priority(state: StateSnapshot) -> bool:
    return state.date_source in PRIORITY_SOURCES


def fine_pointer() -> bool:
    """Pointer policy for terminals: never a coarse (touch) pointer."""
    return False


def derive_date_time_format(state: StateSnapshot, changed: FrozenSet[str]) -> Optional[Dict[str, object]]:
    return {'date_time_format': date_time_format(state.locale, state.date_time_format_options)}


def clear_user_changed_on_focus(state: StateSnapshot, changed: FrozenSet[str]) -> Optional[Dict[str, object]]:
    if 'focused' in changed and state.focused:
        return {'user_changed_date': False}
    return None


def mark_user_edits(state: StateSnapshot, changed: FrozenSet[str]) -> Optional[Dict[str, object]]:
    # Only edits made while the text field has focus count as the user's.
    if state.focused:
        return {'user_changed_date': True}
    return None


def render_value_from_date(
    state: StateSnapshot,
    changed: FrozenSet[str],
    pointer_is_coarse: Callable[[], bool] = fine_pointer,
) -> Optional[Dict[str, object]]:
    closing = 'opened' in changed and not state.opened
    canceled = state.close_result is not None and state.close_result.canceled
    blur = 'focused' in changed and not state.focused
    if (
        ('date' in changed and not state.focused)
        or (blur and state.user_changed_date)
        or (closing and state.user_changed_date and not canceled)
        or ('date_time_format' in changed and has_date_priority(state))
    ):
        formatted = format_date(state.date, state.date_time_format)
        # A coarse pointer usually means an on-screen keyboard the selection would hide.
        return {'value': formatted, 'select_text': bool(formatted) and not pointer_is_coarse()}
    return None


def parse_value_into_date(state: StateSnapshot, changed: FrozenSet[str]) -> Optional[Dict[str, object]]:
    formatter = state.date_time_format
    if formatter is None:
        return None
    reparse = 'date_time_format' in changed or 'time_bias' in changed
    if not ('value' in changed or (reparse and not has_date_priority(state))):
        return None
    if 'time_bias' not in changed and state.date is not None and format_date(state.date, formatter) == state.value:
        # Text already renders the current date.
        return None
    parsed = parse_date(state.value, formatter, state.time_bias)
    if parsed is None:
        return None
    return {'date': parsed}


def reconciliation_rules(pointer_is_coarse: Optional[Callable[[], bool]] = None) -> List[Tuple[Tuple[str, ...], Rule]]:
    """Rule table in evaluation order; later rules win on conflicting fields."""
    render = functools.partial(render_value_from_date, pointer_is_coarse=pointer_is_coarse or fine_pointer)
    return [
        (('date_time_format_options', 'locale'), derive_date_time_format),
        (('focused',), clear_user_changed_on_focus),
        (('date', 'value'), mark_user_edits),
        (('date', 'date_time_format', 'focused', 'opened'), render),
        (('date_time_format', 'time_bias', 'value'), parse_value_into_date),
    ]


# -----------------------------
# Input dispatch
# -----------------------------

ARROW_KEYS = ('left', 'right', 'up', 'down')
PAGE_KEYS = ('pageup', 'pagedown')
_KEY_ALIASES = {'c-m': 'enter', 'c-i': 'tab', 'c-h': 'backspace', 'c-j': 'enter'}


@dataclass(frozen=True)
class KeyStroke:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False

    @classmethod
    def from_key(cls, name: object) -> 'KeyStroke':
        """Translate a prompt_toolkit key name (``c-s-left``, ``pagedown``...)."""
        raw = str(getattr(name, 'value', name))
        raw = _KEY_ALIASES.get(raw, raw)
        if raw.startswith('c-s-'):
            return cls(key=raw[4:], ctrl=True, shift=True)
        if raw.startswith('s-'):
            return cls(key=raw[2:], shift=True)
        if raw.startswith('c-'):
            return cls(key=raw[2:], ctrl=True)
        return cls(key=raw)


# -----------------------------
# UI helpers (fragments only)
# -----------------------------

def _char_width(ch: str) -> int:
    """Return printable cell width for a single character."""
    if unicodedata.combining(ch) or unicodedata.category(ch) == "Cf":
        return 0
    fallback = 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    width = _pt_get_cwidth(ch)
    return width if width > fallback else fallback


def _display_width(text: str) -> int:
    return sum(_char_width(ch) for ch in text)


def _truncate(s: str, maxlen: int) -> str:
    """Cut to a display width, ending with an ellipsis when shortened."""
    s = (s or "").replace("\n", " ")
    if maxlen <= 0:
        return ""
    if _display_width(s) <= maxlen:
        return s
    out: List[str] = []
    width = 0
    for ch in s:
        ch_w = _char_width(ch)
        if width + ch_w + 1 > maxlen:
            break
        out.append(ch)
        width += ch_w
    return "".join(out) + "…"


def _pad_display(text: Optional[str], width: int, align: str = "left") -> str:
    raw = _truncate(text or "", width)
    pad = max(0, width - _display_width(raw))
    if align == "right":
        return " " * pad + raw
    if align == "center":
        left = pad // 2
        return (" " * left) + raw + (" " * (pad - left))
    return raw + (" " * pad)


# -----------------------------
# Calendar parts
# -----------------------------

class CalendarDay:
    """One day cell of the month grid."""

    def __init__(self, date: dt.date, *, selected: bool = False, is_today: bool = False, outside_month: bool = False):
        self.date = date
        self.selected = selected
        self.is_today = is_today
        self.outside_month = outside_month

    def fragment(self) -> Tuple[str, str]:
        label = f"{self.date.day:2d}"
        if self.selected:
            return ('class:calendar.selected', f"[{label}]")
        if self.outside_month:
            return ('class:calendar.outside', f" {label} ")
        if self.is_today:
            return ('class:calendar.today', f"<{label}>")
        return ('class:calendar.day', f" {label} ")


class TodayButton:
    def __init__(self, locale: str):
        self.locale = locale

    def fragments(self) -> List[Tuple[str, str]]:
        return [('class:calendar.today-button', ' Today (Ctrl-T) ')]


class MonthCalendar:
    """Month grid around the selected date (or today when none is chosen)."""

    def __init__(self) -> None:
        self.date: Optional[dt.date] = None
        self.locale = FALLBACK_LOCALE
        self.day_part_type: Callable[..., CalendarDay] = CalendarDay
        self.days_of_week_format = 'short'
        self.month_format = 'long'
        self.year_format = 'numeric'

    def header(self, anchor: dt.date) -> str:
        skeleton = 'y' * YEAR_WIDTHS[self.year_format] + 'M' * MONTH_WIDTHS[self.month_format]
        return babel_dates.format_date(anchor, format=pattern_for_skeleton(self.locale, skeleton), locale=self.locale)

    def day_names(self) -> List[str]:
        loc = Locale.parse(self.locale)
        names = babel_dates.get_day_names(WEEKDAY_WIDTHS[self.days_of_week_format], 'stand-alone', loc)
        first = loc.first_week_day
        return [names[(first + i) % 7] for i in range(7)]

    def fragments(self, reference: dt.date) -> List[Tuple[str, str]]:
        anchor = self.date or reference
        first = Locale.parse(self.locale).first_week_day
        frags: List[Tuple[str, str]] = [
            ('class:calendar.header', _pad_display(self.header(anchor), 28, 'center')),
            ('', '\n'),
            ('class:calendar.weekdays', ''.join(_pad_display(n, 4, 'center') for n in self.day_names())),
            ('', '\n'),
        ]
        for week in calendar.Calendar(firstweekday=first).monthdatescalendar(anchor.year, anchor.month):
            for day in week:
                part = self.day_part_type(
                    day,
                    selected=day == self.date,
                    is_today=day == reference,
                    outside_month=day.month != anchor.month,
                )
                frags.append(part.fragment())
            frags.append(('', '\n'))
        return frags


# -----------------------------
# Date combo box
# -----------------------------

class DateComboBox:
    """Text field plus popup calendar whose text and date never disagree for long."""

    def __init__(
        self,
        *,
        locale: Optional[str] = None,
        date: Optional[dt.date] = None,
        value: Optional[str] = None,
        time_bias: Optional[str] = None,
        date_time_format_options: Optional[Dict[str, Optional[str]]] = None,
        days_of_week_format: str = 'short',
        month_format: str = 'long',
        year_format: str = 'numeric',
        calendar_part_type: Callable[[], MonthCalendar] = MonthCalendar,
        day_part_type: Callable[..., CalendarDay] = CalendarDay,
        today_button_part_type: Callable[[str], TodayButton] = TodayButton,
        pointer_is_coarse: Optional[Callable[[], bool]] = None,
        fallback_keydown: Optional[Callable[[KeyStroke], bool]] = None,
    ) -> None:
        self._listeners: Dict[str, List[Callable[[object], None]]] = {}
        self._raise_change_events = False
        self._fallback_keydown = fallback_keydown
        self.store = ReactiveState()
        for fields, rule in reconciliation_rules(pointer_is_coarse):
            self.store.on_change(fields, rule)
        self.store.set_state({
            'date': None,
            'value': '',
            'date_source': DateSource.NONE,
            'user_changed_date': False,
            'focused': False,
            'opened': False,
            'close_result': None,
            'select_text': False,
            'date_time_format': None,
            'date_time_format_options': normalize_format_options(date_time_format_options),
            'locale': normalize_locale(locale),
            'time_bias': normalize_time_bias(time_bias),
            'days_of_week_format': _check_choice('days_of_week_format', days_of_week_format, WEEKDAY_WIDTHS),
            'month_format': _check_choice('month_format', month_format, MONTH_WIDTHS),
            'year_format': _check_choice('year_format', year_format, YEAR_WIDTHS),
            'calendar_part_type': calendar_part_type,
            'day_part_type': day_part_type,
            'today_button_part_type': today_button_part_type,
        })
        if date is not None:
            self.date = date
        if value:
            self.value = value

    # -- notifications

    def on(self, event: str, callback: Callable[[object], None]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def _emit(self, event: str, payload: object) -> None:
        logger.debug("%s: %r", event, payload)
        for callback in list(self._listeners.get(event, [])):
            callback(payload)

    @contextmanager
    def _user_action(self):
        saved = self._raise_change_events
        self._raise_change_events = True
        try:
            yield
        finally:
            self._raise_change_events = saved

    def _set_state(self, changes: Dict[str, object]) -> FrozenSet[str]:
        changed = self.store.set_state(changes)
        if 'value' in changed:
            self._emit('value-changed', self.value)
        if 'date' in changed and self._raise_change_events:
            self._emit('date-changed', self.date)
        return changed

    def _get(self, name: str):
        return getattr(self.store.get_state(), name)

    @property
    def state(self) -> StateSnapshot:
        return self.store.get_state()

    # -- date and text

    @property
    def date(self) -> Optional[dt.date]:
        return self._get('date')

    @date.setter
    def date(self, date: Optional[dt.date]) -> None:
        if isinstance(date, dt.datetime):
            date = date.date()
        self._set_state({'date': date, 'date_source': DateSource.EXTERNAL})

    @property
    def value(self) -> str:
        return self._get('value')

    @value.setter
    def value(self, value: str) -> None:
        # Callers cannot predict what the text does to the date, so report it.
        with self._user_action():
            self._set_state({'value': value or '', 'select_text': False, 'date_source': DateSource.USER_EDIT})

    def type_text(self, chars: str) -> None:
        """Insert typed characters; a fresh selection is replaced rather than extended."""
        base = '' if self.select_text else self.value
        self.value = base + chars

    def delete_backward(self) -> None:
        self.value = '' if self.select_text else self.value[:-1]

    def pick_date(self, date: dt.date) -> None:
        with self._user_action():
            self._set_state({'date': date, 'date_source': DateSource.CALENDAR_PICK})

    def select_today(self) -> None:
        self.pick_date(today())
        self.close()

    @property
    def date_time_format(self) -> Optional[DateTimeFormat]:
        return self._get('date_time_format')

    @property
    def date_priority(self) -> bool:
        return has_date_priority(self.state)

    @property
    def user_changed_date(self) -> bool:
        return self._get('user_changed_date')

    @property
    def select_text(self) -> bool:
        return self._get('select_text')

    # -- configuration

    @property
    def locale(self) -> str:
        return self._get('locale')

    @locale.setter
    def locale(self, locale: Optional[str]) -> None:
        with self._user_action():
            self._set_state({'locale': normalize_locale(locale)})

    @property
    def time_bias(self) -> Optional[str]:
        return self._get('time_bias')

    @time_bias.setter
    def time_bias(self, time_bias: Optional[str]) -> None:
        self._set_state({'time_bias': normalize_time_bias(time_bias)})

    @property
    def date_time_format_options(self) -> Dict[str, str]:
        return dict(self._get('date_time_format_options'))

    @date_time_format_options.setter
    def date_time_format_options(self, options: Optional[Dict[str, Optional[str]]]) -> None:
        self._set_state({'date_time_format_options': normalize_format_options(options)})

    @property
    def days_of_week_format(self) -> str:
        return self._get('days_of_week_format')

    @days_of_week_format.setter
    def days_of_week_format(self, value: str) -> None:
        self._set_state({'days_of_week_format': _check_choice('days_of_week_format', value, WEEKDAY_WIDTHS)})

    @property
    def month_format(self) -> str:
        return self._get('month_format')

    @month_format.setter
    def month_format(self, value: str) -> None:
        self._set_state({'month_format': _check_choice('month_format', value, MONTH_WIDTHS)})

    @property
    def year_format(self) -> str:
        return self._get('year_format')

    @year_format.setter
    def year_format(self, value: str) -> None:
        self._set_state({'year_format': _check_choice('year_format', value, YEAR_WIDTHS)})

    @property
    def calendar_part_type(self) -> Callable[[], MonthCalendar]:
        return self._get('calendar_part_type')

    @calendar_part_type.setter
    def calendar_part_type(self, part_type: Callable[[], MonthCalendar]) -> None:
        self._set_state({'calendar_part_type': part_type})

    @property
    def day_part_type(self) -> Callable[..., CalendarDay]:
        return self._get('day_part_type')

    @day_part_type.setter
    def day_part_type(self, part_type: Callable[..., CalendarDay]) -> None:
        self._set_state({'day_part_type': part_type})

    @property
    def today_button_part_type(self) -> Callable[[str], TodayButton]:
        return self._get('today_button_part_type')

    @today_button_part_type.setter
    def today_button_part_type(self, part_type: Callable[[str], TodayButton]) -> None:
        self._set_state({'today_button_part_type': part_type})

    # -- focus and popup

    @property
    def focused(self) -> bool:
        return self._get('focused')

    @property
    def opened(self) -> bool:
        return self._get('opened')

    @property
    def close_result(self) -> Optional[CloseResult]:
        return self._get('close_result')

    def focus(self) -> None:
        self._set_state({'focused': True})

    def blur(self) -> None:
        self._set_state({'focused': False})

    def open(self) -> None:
        self._set_state({'opened': True, 'close_result': None})

    def close(self, canceled: bool = False) -> None:
        if not self.opened:
            return
        self._set_state({'opened': False, 'close_result': CloseResult(canceled=canceled)})

    def toggle(self) -> None:
        if self.opened:
            self.close()
        else:
            self.open()

    # -- navigation

    def _navigate(self, direction: str) -> bool:
        with self._user_action():
            self._set_state({'date': navigate(self.date, direction), 'date_source': DateSource.CALENDAR_PICK})
        return True

    def go_left(self) -> bool:
        return self._navigate('left')

    def go_right(self) -> bool:
        return self._navigate('right')

    def go_up(self) -> bool:
        return self._navigate('up')

    def go_down(self) -> bool:
        return self._navigate('down')

    def page_up(self) -> bool:
        return self._navigate('pageup')

    def page_down(self) -> bool:
        return self._navigate('pagedown')

    # -- keyboard

    def keydown(self, stroke: KeyStroke) -> bool:
        """Handle a key; False means the key is left to the caller."""
        handled = False
        if stroke.key in ARROW_KEYS:
            if self.opened and stroke.ctrl and stroke.shift:
                handled = self._navigate(stroke.key)
        elif stroke.key in PAGE_KEYS:
            if self.opened:
                handled = self._navigate(stroke.key)
        if handled:
            return True
        if self._combo_keydown(stroke):
            return True
        return bool(self._fallback_keydown and self._fallback_keydown(stroke))

    def _combo_keydown(self, stroke: KeyStroke) -> bool:
        if stroke.key == 'down' and not (stroke.ctrl or stroke.shift) and not self.opened:
            self.open()
            return True
        if stroke.key == 'escape' and self.opened:
            self.close(canceled=True)
            return True
        if stroke.key == 'enter' and self.opened:
            self.close()
            return True
        return False

    # -- rendering

    def calendar_fragments(self, reference: Optional[dt.date] = None) -> List[Tuple[str, str]]:
        state = self.state
        part = state.calendar_part_type()
        for name in ('locale', 'day_part_type', 'days_of_week_format', 'month_format', 'year_format'):
            if hasattr(part, name):
                setattr(part, name, getattr(state, name))
        part.date = state.date
        frags = part.fragments(reference or today())
        frags.extend(state.today_button_part_type(state.locale).fragments())
        return frags


# -----------------------------
# Config
# -----------------------------

@dataclass
class Config:
    locale: Optional[str] = None
    locales: List[str] = field(default_factory=list)
    time_bias: Optional[str] = None
    date_format: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FORMAT_OPTIONS))
    days_of_week_format: str = 'short'
    month_format: str = 'long'
    year_format: str = 'numeric'


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config: expected a mapping in {path}")
    locales = raw.get("locales") or []
    if not isinstance(locales, list):
        raise ValueError("Config: 'locales' must be a list")
    cfg = Config(
        locale=normalize_locale(raw["locale"]) if raw.get("locale") else None,
        locales=[normalize_locale(str(tag)) for tag in locales],
        time_bias=normalize_time_bias(raw.get("time_bias")),
        date_format=normalize_format_options(raw.get("date_format")),
        days_of_week_format=_check_choice('days_of_week_format', raw.get("days_of_week_format", "short"), WEEKDAY_WIDTHS),
        month_format=_check_choice('month_format', raw.get("month_format", "long"), MONTH_WIDTHS),
        year_format=_check_choice('year_format', raw.get("year_format", "numeric"), YEAR_WIDTHS),
    )
    return cfg


def build_combo(cfg: Config) -> DateComboBox:
    return DateComboBox(
        locale=cfg.locale or (cfg.locales[0] if cfg.locales else None),
        time_bias=cfg.time_bias,
        date_time_format_options=cfg.date_format,
        days_of_week_format=cfg.days_of_week_format,
        month_format=cfg.month_format,
        year_format=cfg.year_format,
    )


def configure_logging(log_level: str = 'ERROR', log_path: Optional[str] = None) -> logging.Logger:
    """Attach a rotating file handler; the handler level follows ``log_level``."""
    if log_path is None:
        log_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'date_combo.log')
    # Reset handlers so repeated calls honour the latest level.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding='utf-8')
    fh.setLevel(getattr(logging, str(log_level).upper(), logging.ERROR))
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(fh)
    return logger


def load_ui_state(path: str) -> dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable UI state %s", path, exc_info=True)
        return {}
    return data if isinstance(data, dict) else {}


def save_ui_state(path: str, data: dict) -> None:
    try:
        d = os.path.dirname(path)
        if d and not os.path.isdir(d):
            os.makedirs(d, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
    except OSError:
        logger.warning("Unable to write UI state %s", path, exc_info=True)


# -----------------------------
# TUI
# -----------------------------

BASE_THEME_STYLE: Dict[str, str] = {
    'field.label': 'bold #ffd75f',
    'field.text': '#f0f0f0 bg:#303030',
    'field.text.focused': '#ffffff bg:#444444',
    'field.text.selected': 'reverse #ffffaf',
    'field.cursor': 'reverse',
    'status': '#87d7ff',
    'status.warning': 'bold #ff8787',
    'calendar.header': 'bold #ffd75f',
    'calendar.weekdays': '#87afff',
    'calendar.day': '#d7d7d7',
    'calendar.outside': '#5f5f5f',
    'calendar.today': 'bold #87ff5f',
    'calendar.selected': 'bold #ffffff bg:#875f00',
    'calendar.today-button': '#5fd7af',
}

FIELD_WIDTH = 28


def field_fragments(combo: DateComboBox) -> List[Tuple[str, str]]:
    text = combo.value
    if combo.focused:
        style = 'class:field.text.selected' if combo.select_text and text else 'class:field.text.focused'
        body = [(style, text), ('class:field.cursor', ' ')]
        pad = FIELD_WIDTH - _display_width(text) - 1
    else:
        body = [('class:field.text', _truncate(text, FIELD_WIDTH))]
        pad = FIELD_WIDTH - _display_width(_truncate(text, FIELD_WIDTH))
    return [('class:field.label', 'Date: ')] + body + [('class:field.text', ' ' * max(0, pad))]


def status_text(combo: DateComboBox, message: str = '') -> str:
    iso = combo.date.isoformat() if combo.date else '-'
    source = 'date' if combo.date_priority else 'text'
    line = f"{iso}  ·  {combo.locale}  ·  {source} wins"
    if combo.time_bias:
        line += f"  ·  bias {combo.time_bias}"
    return f"{line}  ·  {message}" if message else line


DISPATCH_KEYS = ('c-s-left', 'c-s-right', 'c-s-up', 'c-s-down', 'pageup', 'pagedown', 'down', 'enter', 'escape')


def build_key_bindings(combo: DateComboBox, ui: Dict[str, object], locales: Optional[List[str]] = None) -> KeyBindings:
    """Key bindings that drive ``combo``; ``ui`` carries the status message and locale cursor."""
    locales = list(locales or [])
    kb = KeyBindings()
    is_focused = Condition(lambda: combo.focused)
    is_opened = Condition(lambda: combo.opened)

    def invalidate(event) -> None:
        event.app.invalidate()

    @kb.add(Keys.Any, filter=is_focused)
    def _(event):
        data = event.data or ''
        if not data.isprintable():
            return
        combo.type_text(data)
        ui['message'] = ''
        invalidate(event)

    @kb.add('backspace', filter=is_focused)
    def _(event):
        combo.delete_backward()
        invalidate(event)

    @kb.add('tab')
    def _(event):
        if combo.focused:
            combo.blur()
            ui['message'] = 'Field left'
        else:
            combo.focus()
            ui['message'] = 'Editing'
        invalidate(event)

    for key_name in DISPATCH_KEYS:

        @kb.add(key_name)
        def _(event, stroke=KeyStroke.from_key(key_name)):
            if combo.keydown(stroke):
                invalidate(event)

    @kb.add('c-t', filter=is_opened)
    def _(event):
        combo.select_today()
        ui['message'] = 'Today'
        invalidate(event)

    @kb.add('c-l')
    def _(event):
        if not locales:
            ui['message'] = 'No locales configured'
            invalidate(event)
            return
        index = (int(ui.get('locale_index', 0) or 0) + 1) % len(locales)
        ui['locale_index'] = index
        combo.locale = locales[index]
        ui['message'] = f"Locale: {combo.locale}"
        invalidate(event)

    @kb.add('c-q')
    @kb.add('c-c')
    def _(event):
        event.app.exit(result=combo.date)

    return kb


def run_ui(combo: DateComboBox, cfg: Config, state_path: Optional[str] = None) -> Optional[dt.date]:
    """Full-screen date field; returns the chosen date on exit."""
    if state_path is None:
        state_path = os.path.expanduser("~/.date_combo.ui.json")
    locales = list(cfg.locales)
    ui: Dict[str, object] = {'message': '', 'locale_index': 0}

    saved = load_ui_state(state_path)
    if locales:
        idx = int(saved.get('locale_index', 0) or 0)
        if 0 <= idx < len(locales) and not cfg.locale:
            ui['locale_index'] = idx
            combo.locale = locales[idx]
    if combo.date is None and saved.get('date'):
        try:
            combo.date = dt.date.fromisoformat(saved['date'])
        except ValueError:
            logger.warning("Ignoring saved date %r", saved.get('date'))
    combo.focus()

    field_window = Window(FormattedTextControl(lambda: field_fragments(combo)), height=1)
    status_window = Window(FormattedTextControl(lambda: [('class:status', status_text(combo, str(ui['message'])))]), height=1)
    popup = ConditionalContainer(
        Frame(Window(FormattedTextControl(lambda: combo.calendar_fragments()), width=30)),
        filter=Condition(lambda: combo.opened),
    )
    body = HSplit([field_window, Window(char=' '), status_window])
    container = FloatContainer(content=body, floats=[Float(content=popup, top=1, left=6)])

    kb = build_key_bindings(combo, ui, locales)
    app = Application(layout=Layout(container), key_bindings=kb, full_screen=True, style=Style.from_dict(BASE_THEME_STYLE))
    result = app.run()
    save_ui_state(state_path, {
        'date': combo.date.isoformat() if combo.date else None,
        'locale_index': ui.get('locale_index', 0),
    })
    return result


# -----------------------------
# CLI
# -----------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Date entry field with a popup calendar")
    ap.add_argument("--config", help="Path to YAML config")
    ap.add_argument("--locale", help="Locale tag such as en_US or de-DE (overrides config)")
    ap.add_argument("--time-bias", choices=list(TIME_BIASES), help="Year to infer for month/day text")
    ap.add_argument("--date", help="Initial date (YYYY-MM-DD)")
    ap.add_argument("--state", help="Path to UI state JSON")
    ap.add_argument("--log-level", default="ERROR", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("--parse", metavar="TEXT", help="Print the ISO date read from TEXT and exit")
    mode.add_argument("--format", metavar="YYYY-MM-DD", help="Print the localized rendering of a date and exit")
    args = ap.parse_args(argv)

    configure_logging(args.log_level)
    try:
        cfg = load_config(args.config) if args.config else Config()
        if args.locale:
            cfg.locale = normalize_locale(args.locale)
        if args.time_bias:
            cfg.time_bias = args.time_bias
        combo = build_combo(cfg)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    for raw in (args.date, args.format):
        if raw is None:
            continue
        try:
            dt.date.fromisoformat(raw)
        except ValueError:
            print(f"Bad date '{raw}' (use YYYY-MM-DD)", file=sys.stderr)
            return 2
    if args.date:
        combo.date = dt.date.fromisoformat(args.date)

    if args.parse is not None:
        parsed = parse_date(args.parse, combo.date_time_format, combo.time_bias)
        if parsed is None:
            print(f"Cannot read '{args.parse}' as a date", file=sys.stderr)
            return 1
        print(parsed.isoformat())
        return 0
    if args.format:
        print(format_date(dt.date.fromisoformat(args.format), combo.date_time_format))
        return 0

    result = run_ui(combo, cfg, state_path=args.state)
    if result is not None:
        print(result.isoformat())
    return 0


if __name__ == "__main__":
    sys.exit(main())
