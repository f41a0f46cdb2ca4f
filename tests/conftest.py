"""
Pytest configuration and fixtures
"""
import sys
from pathlib import Path

import numpy as np
import pytest
from scipy import signal

sys.path.insert(0, str(Path(__file__).parent.parent))

# The worked example from the notebook write-up: one difference turns it into
# [1, 1, -1, 1, 1, 1, -1, 1, 1].
EXAMPLE_SERIES = [0, 1, 2, 1, 2, 3, 4, 3, 4, 5]


def simulate_arma(phi=(), theta=(), n=400, sigma=1.0, mean=0.0, seed=0, burn=200):
    """Gaussian ARMA sample via a linear filter, with burn-in discarded."""
    rng = np.random.default_rng(seed)
    e = rng.normal(0.0, sigma, n + burn)
    x = signal.lfilter(np.r_[1.0, theta], np.r_[1.0, -np.asarray(phi, dtype=float)], e)
    return x[burn:] + mean


@pytest.fixture
def example_series():
    return list(EXAMPLE_SERIES)


@pytest.fixture
def ar1_series():
    return simulate_arma(phi=(0.6,), n=500, seed=1)


@pytest.fixture
def random_walk():
    """Integrated AR(1): d=1 with phi=0.6 on the increments."""
    return np.cumsum(simulate_arma(phi=(0.6,), n=300, mean=0.5, seed=2)) + 100.0
