"""Exception types raised across the pipeline."""


class GallevrError(Exception):
    """Base class for pipeline errors."""


class PhotoUnavailableError(GallevrError):
    """The source photo no longer exists."""


class EncoderUnavailableError(GallevrError):
    """An encoder strategy cannot run on this machine."""


class EncodingError(GallevrError):
    """An encoder strategy ran but failed to produce output."""


class UploadError(GallevrError):
    """A transfer to the gallery failed and may be retried."""


class AuthenticationError(GallevrError):
    """Credentials are missing or the account is not verified."""


class PhotoRejectedError(GallevrError):
    """The photo does not meet the gallery's dimension requirements."""
