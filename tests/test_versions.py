import importlib.metadata

import kubemirror
from kubemirror._cogs.helpers import versions


def test_version_is_exported():
    assert kubemirror.__version__ == versions.version


def test_version_matches_the_distribution():
    try:
        expected = importlib.metadata.version('kubemirror')
    except importlib.metadata.PackageNotFoundError:
        expected = None
    assert versions.version == expected
