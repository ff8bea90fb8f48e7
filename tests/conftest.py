import os

import pytest

from cftool.util.common import Singleton
from cftool.util.storage import Config


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Empty config in a temporary directory"""
    monkeypatch.setattr(Singleton, '_instances', {})
    monkeypatch.setattr('cftool.util.storage.config_directory', lambda: tmp_path)
    for name in list(os.environ):
        if name.startswith('CFTOOL_'):
            monkeypatch.delenv(name)
    return Config()
