"""
errors.py - Exception types raised by the screening pipeline.

Every stage raises one of these instead of returning partial output.
Batch drivers catch ``PipelineError`` per item and keep going.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class InputError(PipelineError, ValueError):
    """The intensity matrix is empty, ragged or out of range."""


class DecodeError(PipelineError, OSError):
    """An image or model file could not be read."""


class ShapeError(PipelineError, ValueError):
    """A block or coordinate count does not form a square grid."""


class ConfigError(PipelineError, ValueError):
    """A parameter is outside what the algorithm supports."""
