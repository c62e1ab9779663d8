import sys
import traceback

import services.logger as log

l = log.get_logger()


def _handle_uncaught_exceptions(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        # Call default handler for keyboard interrupt (e.g. Ctrl+C)
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    l.critical(
        "Unhandled exception caught:\n"
        + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    )


# Install global exception hook
sys.excepthook = _handle_uncaught_exceptions


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------

class RelayBaseError(Exception):
    """Root of every error raised by the relay."""


class StorageConfigError(RelayBaseError):
    """Object store settings are incomplete. Fatal at startup."""


class StorageError(RelayBaseError):
    """An object store operation failed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(f"{message}: {cause}" if cause is not None else message)
        self.cause = cause


class FetchError(RelayBaseError):
    """The media fetcher could not bring an attachment to local disk."""


class IdentityError(RelayBaseError):
    """A sender identifier could not be mapped to a display name."""


class RelayError(RelayBaseError):
    """
    A terminal failure while relaying one media item.

    :param stage: step that failed, e.g. ``"download media"`` or ``"upload file"``.
    :param cause: the underlying exception.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
