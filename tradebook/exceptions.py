"""Error taxonomy shared by the import pipeline and the read endpoints."""


class TradebookError(Exception):
    """Base class for every error raised by tradebook."""


class DecodeError(TradebookError):
    """The uploaded buffer is not a readable spreadsheet."""


class MappingError(TradebookError):
    """No row survived column mapping."""


class StoreWriteError(TradebookError):
    """A bulk or single-row insert was rejected by the record store."""


class StoreUnavailableError(StoreWriteError):
    """The record store could not be reached at all.

    Unlike a plain StoreWriteError this is not recovered by retrying row by
    row; it aborts the running import.
    """


class StoreReadError(TradebookError):
    """A query against the record store failed."""


class ValidationError(TradebookError):
    """A client supplied parameter is malformed."""


class NotFoundError(TradebookError):
    """The requested import job or record does not exist."""
