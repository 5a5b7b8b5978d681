class ScreenerError(Exception):
    """Base class for screener errors."""


class RegistryError(ScreenerError):
    """Two queryable fields claim the same alias."""


class UniverseError(ScreenerError):
    """A universe could not be built from the given records."""


class FormulaError(ScreenerError):
    """A calculate expression could not be tokenized or parsed."""
