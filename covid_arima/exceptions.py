"""
exceptions.py
-------------
Error taxonomy for ARIMA fitting, order selection and forecasting.

Every error is local to a single fit attempt: nothing here carries or mutates
shared state, so callers (the order selector in particular) can catch one,
skip the candidate and carry on.
"""

from __future__ import annotations


class ARIMAError(Exception):
    """Base class for all modelling errors raised by covid_arima."""


class InsufficientLengthError(ARIMAError):
    """Series is too short for the requested differencing or ARMA order."""


class NonStationaryFitError(ARIMAError):
    """Estimated AR/MA polynomials have roots on or inside the unit circle."""


class NoFeasibleOrderError(ARIMAError):
    """Every candidate in the order grid failed to fit."""


class NumericalDivergenceError(ARIMAError):
    """Likelihood optimisation did not converge within its iteration budget."""


class InvalidModelError(ARIMAError):
    """A FittedModel is missing or internally inconsistent."""


class InvalidConfidenceLevelError(ARIMAError, ValueError):
    """Confidence level outside the open interval (0, 1)."""
