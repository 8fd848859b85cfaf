from types import SimpleNamespace

import pytest

import date_combo as dc

from .helpers import dummy_app


@pytest.fixture
def ui_context(pinned_today):
    combo = dc.DateComboBox(locale='en_US')
    ui = {'message': '', 'locale_index': 0}
    kb = dc.build_key_bindings(combo, ui, ['en_US', 'de_DE'])
    return SimpleNamespace(combo=combo, ui=ui, kb=kb, app=dummy_app())
