"""Filter exceptions."""


class FilterError(RuntimeError):
    """Base error for the print filter."""


class SetupError(FilterError):
    """Raised when the per-job workspace cannot be created."""


class RasterizationError(FilterError):
    """Raised when the document rasterizer cannot be run or exits with failure."""


class CompressionError(FilterError):
    """Raised when a page bitmap cannot be compressed."""


class InspectionError(FilterError):
    """Raised when page geometry or luminance cannot be determined."""


class OutputError(FilterError):
    """Raised when the job stream can no longer be written, e.g. the reader went away."""


class FramingViolation(FilterError):
    """Raised when an internal framing invariant is broken.

    Always a programming error: a declared payload length that does not match
    the payload, or a directive emitted out of order.
    """
