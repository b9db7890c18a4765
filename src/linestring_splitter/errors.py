"""Exceptions raised by the splitter. Each one aborts the current run."""


class SplitterError(Exception):
    """Base class for unrecoverable run errors."""


class ConfigurationError(SplitterError):
    """Invalid option values or malformed creation options."""


class InputError(SplitterError, ValueError):
    """The input dataset cannot be opened or holds unsupported geometries."""


class OutputError(SplitterError):
    """The output dataset, layer, fields, features or transactions failed."""
