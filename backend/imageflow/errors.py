"""Exceptions raised by the conversion pipeline."""


class ImageFlowError(Exception):
    """Base class for pipeline errors."""


class ConversionError(ImageFlowError):
    """A single item could not be converted."""


class DecodeError(ConversionError):
    """Source bytes are not a valid or supported image."""


class EncodeError(ConversionError):
    """The requested output format/quality cannot be produced."""


class EmptyBatchError(ImageFlowError):
    """A run was requested with no items in the registry."""


class BatchInProgressError(ImageFlowError):
    """A run is already active on this session."""


class InvalidTransitionError(ImageFlowError):
    """An item status change that the lifecycle does not allow."""
