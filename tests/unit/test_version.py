"""Unit tests for package metadata."""

from __future__ import annotations

import pytest

import kube_runner


@pytest.mark.unit
def test_version_is_exported() -> None:
    assert kube_runner.__version__.count(".") == 2
