"""
Exception hierarchy for the optical bar camera package.

Every exception subclasses both ``OpticalBarError`` and the matching
built-in exception, so callers can either catch package errors as a
group or keep using generic ``ValueError`` / ``IOError`` handlers.
"""


class OpticalBarError(Exception):
    """Base exception for all optical bar camera errors."""


class InvalidModelError(OpticalBarError, ValueError):
    """Camera parameters violate the model invariants.

    Raised for non-positive pitch or focal length, a zero scan rate,
    an image narrower than two columns, or vectors of the wrong shape.
    """


class CameraFileError(OpticalBarError):
    """Base class for failures while reading or writing a camera file."""


class CameraFileIOError(CameraFileError, IOError):
    """The camera file could not be opened or ended unexpectedly."""


class CameraFileFormatError(CameraFileError, ValueError):
    """A camera file line does not match its expected layout.

    Also raised for unsupported format versions, a wrong camera type tag
    and parameter values that do not describe a valid model.
    """


class CorrectionError(OpticalBarError, ValueError):
    """A physical ray correction could not be evaluated."""


class PixelToRayError(OpticalBarError, RuntimeError):
    """Forward projection of a pixel to a world ray failed."""


class PointToPixelError(OpticalBarError, RuntimeError):
    """Inverse projection of a world point to a pixel failed."""
