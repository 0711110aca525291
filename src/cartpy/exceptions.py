"""Exceptions raised by cartpy."""


class ConfigurationError(ValueError):
    """Invalid estimator options, detected before any training work."""


class DataError(ValueError):
    """Training or prediction data not in a usable form."""
