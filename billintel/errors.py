class BillIntelError(Exception):
    """Base class for errors raised outside the analyzers."""


class ExtractionError(BillIntelError):
    """The extraction collaborator failed or produced nothing usable."""


class ConfigError(BillIntelError):
    """A configuration file or override holds an invalid value."""
