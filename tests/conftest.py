"""
Pytest fixtures shared across the fundrouter tests.
"""

import random

import pytest

from fundrouter.core.methods import MethodRegistry


@pytest.fixture
def registry() -> MethodRegistry:
    return MethodRegistry()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
