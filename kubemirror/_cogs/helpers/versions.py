"""
Detecting the package's own version.

The version is determined only once at startup when the code is loaded.
It is used in the User-Agent header and in the CLI's ``--version``.
"""
import importlib.metadata
from typing import Optional

version: Optional[str] = None

try:
    name, *_ = __name__.split('.')  # usually "kubemirror", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # not installed, e.g. running from a source tree without metadata.
