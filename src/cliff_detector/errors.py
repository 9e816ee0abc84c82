"""Exceptions raised by the cliff detector."""


class CliffDetectorError(ValueError):
    """Base class for all cliff detector failures."""


class InvalidModel(CliffDetectorError):
    """Camera model is not initialized or does not match the depth frame."""


class InvalidConfiguration(CliffDetectorError):
    """Parameter combination that would produce undefined geometry."""


class MalformedFrame(CliffDetectorError):
    """Depth frame with an unsupported encoding or inconsistent dimensions."""


__all__ = [
    "CliffDetectorError",
    "InvalidModel",
    "InvalidConfiguration",
    "MalformedFrame",
]
