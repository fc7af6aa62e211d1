"""Error kinds surfaced by the background-removal flow."""


class ImageDecodeError(ValueError):
    """The uploaded file is empty, corrupt, or not a supported raster format."""


class InferenceError(RuntimeError):
    """Session creation or one of the two model runs failed."""
