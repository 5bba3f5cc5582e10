"""Error taxonomy for addon reconciliation runs."""

from __future__ import annotations


UNKNOWN_ERROR = "Unknown Error"


class AddonSyncError(Exception):
    """Base class for all addon_sync errors."""


class IdentityError(AddonSyncError, ValueError):
    """A repository URL does not have the form scheme://host/owner/repo[.git]."""


class ControlFileError(AddonSyncError):
    """The control document is malformed or misses required fields."""


class CollectionError(AddonSyncError):
    """The installed addon state could not be collected."""


class RemoteError(AddonSyncError):
    """A call against the remote game server failed."""


class NetworkError(RemoteError):
    """The remote host could not be reached or the connection broke."""


class RemoteTimeoutError(NetworkError):
    """The remote host did not answer in time."""


class ProtocolError(RemoteError):
    """The remote host answered with something we could not understand."""


class NotFoundError(RemoteError):
    """A file, directory or ref does not exist on the remote host."""


class UnknownRemoteError(RemoteError):
    """Remote failure of unrecognized shape, keeps the raw text."""

    def __init__(self, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(raw_text or UNKNOWN_ERROR)


class GitOperationError(RemoteError):
    """A git clone or pull reported an error on the remote host."""


class VcsError(AddonSyncError):
    """The source-control hosting API returned an error."""


class NotificationError(AddonSyncError):
    """A notification could not be delivered."""


def describe_error(error: object) -> str:
    """Turn any failure value into a message for reports.

    Exceptions yield their message, plain strings are kept as-is and
    anything else (including empty messages) becomes ``"Unknown Error"``.
    """
    if isinstance(error, UnknownRemoteError):
        return error.raw_text or UNKNOWN_ERROR
    if isinstance(error, BaseException):
        return str(error) or UNKNOWN_ERROR
    if isinstance(error, str):
        return error or UNKNOWN_ERROR
    return UNKNOWN_ERROR
