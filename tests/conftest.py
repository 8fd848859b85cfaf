import datetime as dt
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import date_combo as dc  # noqa: E402

PINNED_TODAY = dt.date(2024, 7, 1)


@pytest.fixture
def pinned_today(monkeypatch):
    monkeypatch.setattr(dc, 'today', lambda: PINNED_TODAY)
    return PINNED_TODAY


@pytest.fixture
def combo(pinned_today):
    return dc.DateComboBox(locale='en_US')


@pytest.fixture
def en_format():
    return dc.date_time_format('en_US')
