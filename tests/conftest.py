# ABOUTME: Shares fixtures for the performance insights test suite.
# ABOUTME: Provides a fixed clock, a seeded generator, and healthy/struggling student records.

import numpy as np
import pytest

from tests.factories import fixed_clock, make_struggling_student, make_student


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def healthy_student():
    return make_student()


@pytest.fixture
def struggling_student():
    return make_struggling_student()
