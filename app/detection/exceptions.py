class DetectionFailure(Exception):
    """Raised when the external detector cannot produce a usable result."""


class DetectionValidationError(DetectionFailure):
    """Raised when the detector response fails structural validation."""


class DetectionNetworkError(DetectionFailure):
    """Raised when the detector call fails due to network/infrastructure issues."""
