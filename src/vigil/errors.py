"""Exceptions raised by the VIGIL core.

Analysis never raises for a well-formed event. The only failure the
core surfaces is a bad configuration, and it surfaces it at
construction time.
"""


class ConfigurationError(ValueError):
    """Invalid detector configuration (bad cap, unknown threshold key, ...)."""
