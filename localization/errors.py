"""Fatal errors raised by the localization pipeline.

Recoverable conditions (registration quality below the gate, redundant
sensor sets, frames without trajectory context) are logged and counted by
the component that owns them and never raised.
"""


class LocalizationError(Exception):
    """Base class for errors that abort a run."""


class ConfigurationError(LocalizationError):
    """Required configuration, map or input file is missing or invalid."""


class StreamError(LocalizationError, IOError):
    """Input stream could not be read or output stream could not be saved."""
