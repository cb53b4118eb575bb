class ValidationError(ValueError):
    """Custom exception for validation errors."""

    pass


class FontError(RuntimeError):
    """Custom exception for font loading and resource failures."""

    pass


class RenderingError(RuntimeError):
    """Custom exception for label rendering and drawing failures."""

    pass


class AssetLoadError(RuntimeError):
    """Custom exception for image and graphic asset fetch failures."""

    pass


class ImageProcessingError(Exception):
    """Custom exception for image decode and save failures."""

    pass
