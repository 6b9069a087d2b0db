"""AniTilky exception classes."""


class AniTilkyError(Exception):
    """Base class for all AniTilky exceptions."""

    # Default HTTP status for API responses
    status_code: int = 500


# Configuration errors
class ConfigError(AniTilkyError):
    """Base class for configuration-related errors."""

    status_code = 500


class DriveConfigError(ConfigError, ValueError):
    """Google Drive credentials are missing or unusable."""

    status_code = 500


class StorageConfigError(ConfigError, ValueError):
    """Object storage zone or access key is not configured."""

    status_code = 500


# Catalog errors
class CatalogError(AniTilkyError):
    """Base class for catalog document failures."""

    status_code = 500


class AnimeNotFoundError(CatalogError, KeyError):
    """Requested anime does not exist."""

    status_code = 404


class SeasonNotFoundError(CatalogError, KeyError):
    """Requested season does not exist on the anime."""

    status_code = 404


class EpisodeNotFoundError(CatalogError, KeyError):
    """Requested episode does not exist in the season."""

    status_code = 404


class DuplicateSeasonError(CatalogError, ValueError):
    """A season with the same number already exists on the anime."""

    status_code = 400


class DuplicateEpisodeError(CatalogError, ValueError):
    """An episode with the same number already exists in the season."""

    status_code = 400


class InvalidEpisodeError(CatalogError, ValueError):
    """Episode payload is missing required data."""

    status_code = 400


class CatalogConflictError(CatalogError):
    """The anime document was modified concurrently; the write was rejected."""

    status_code = 409


# Remote source errors
class RemoteSourceError(AniTilkyError):
    """Base class for remote drive failures."""

    status_code = 500


class FolderNotFoundError(RemoteSourceError, LookupError):
    """Folder not found or inaccessible."""

    status_code = 404


class NotAFolderError(RemoteSourceError, ValueError):
    """The folder reference points to something that is not a folder."""

    status_code = 400


class NoVideoFilesError(RemoteSourceError, LookupError):
    """No video files were found in the folder."""

    status_code = 404


class RemoteFileError(RemoteSourceError):
    """A remote file could not be opened or read."""

    status_code = 502


# Object storage errors
class StorageError(AniTilkyError):
    """Base class for object storage failures."""

    status_code = 502


class UploadRejectedError(StorageError):
    """The object store refused or failed the upload."""

    status_code = 502


class StorageDeleteError(StorageError):
    """The object store failed to delete a file."""

    status_code = 502


# Transfer errors
class TransferError(AniTilkyError):
    """Base class for bulk transfer failures."""

    status_code = 500


class TransferStalledError(TransferError, TimeoutError):
    """No data arrived from the remote source within the stall timeout."""

    status_code = 504


class TransferJobNotFoundError(TransferError, KeyError):
    """Requested transfer job could not be located."""

    status_code = 404


class TransferJobFinishedError(TransferError):
    """The transfer job has already finished and cannot be changed."""

    status_code = 409


class TransferManagerUnavailableError(TransferError, RuntimeError):
    """The transfer manager is not initialized or is shutting down."""

    status_code = 503
