class HFDownloaderError(Exception):
    """Base class for every error the CLI reports and exits on."""


class UsageError(HFDownloaderError):
    """Missing or conflicting command line input."""


class ConfigError(HFDownloaderError):
    """Malformed configuration file or missing mandatory settings."""


class DownloadError(HFDownloaderError):
    """Every download attempt failed."""


class CleanupError(HFDownloaderError):
    """The corrupted-file cleanup pass failed."""


class InstallError(HFDownloaderError):
    """Installing the executable failed, including the elevated fallback."""


class UnsupportedPlatformError(InstallError):
    """Install was requested on a platform without sudo."""
