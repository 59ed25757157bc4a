"""Pytest configuration for repo-wide test behavior."""

# Ensure project root on sys.path for imports
import os
import sys

root = os.path.dirname(os.path.abspath(__file__))
proj = os.path.abspath(os.path.join(root, ".."))
if proj not in sys.path:
    sys.path.insert(0, proj)

import pytest

from catalog import VariantCatalog


@pytest.fixture
def catalog():
    return VariantCatalog.with_defaults()
