"""Exception types raised across the image-processing pipeline."""


class ImagePrepError(Exception):
    """Base class for pipeline errors."""


class PayloadTooLargeError(ImagePrepError):
    """The request carries more image bytes than the configured budgets allow."""

    def __init__(self, hint: str, detail: str = ""):
        super().__init__(detail or hint)
        self.hint = hint


class TransportError(ImagePrepError):
    """The model endpoint could not be reached or returned an error."""


class ParseError(ImagePrepError):
    """The model returned text that is not JSON."""


class ResultValidationError(ImagePrepError):
    """The model returned JSON that does not match the result schema."""


class DecodeError(ImagePrepError):
    """The supplied bytes cannot be interpreted as an image."""
