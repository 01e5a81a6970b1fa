"""Exception types for PriceWatch."""


class PriceWatchError(Exception):
    """Base class for all PriceWatch errors."""


class SourceUnavailable(PriceWatchError):
    """A price source could not produce prices."""


class PersistenceFailure(PriceWatchError):
    """A store read or write failed."""


class SchedulerError(PriceWatchError):
    """The scheduler was used outside its lifecycle."""


class ConfigError(PriceWatchError):
    """Configuration file contains invalid values."""
