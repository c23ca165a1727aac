class ProcessingError(Exception):
    """Base exception for folder processing operations."""
    pass


class InvalidSourceError(ProcessingError):
    """Raised when the selected path is empty, missing or not a directory."""
    pass


class NoSupportedFilesError(ProcessingError):
    """Raised when a folder contains nothing the engine can watermark."""
    pass


class OverlayError(ProcessingError):
    """Raised when the visible overlay cannot be drawn onto an image."""
    pass


class SwapError(ProcessingError):
    """Raised when a rename step of a file swap fails."""
    pass
