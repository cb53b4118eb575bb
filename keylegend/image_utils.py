from pathlib import Path

from PIL import Image

from keylegend.utils.exceptions import ImageProcessingError
from keylegend.utils.logging import log_message


def save_image_with_compression(image, output_path, jpeg_quality=95, png_compression=6, verbose=False):
    """
    Save an image with specified compression settings.

    Args:
        image (PIL.Image): Image to save
        output_path (str or Path): Path to save the image
        jpeg_quality (int): JPEG quality (1-100, higher is better quality)
        png_compression (int): PNG compression level (0-9, higher is more compression)
        verbose (bool): Whether to print verbose logging

    Raises:
        ImageProcessingError: If image saving fails
    """
    output_path = Path(output_path)
    extension = output_path.suffix.lower()
    save_options = {}

    if extension in (".jpg", ".jpeg"):
        output_format = "JPEG"
        # JPEG has no alpha channel: flatten onto white
        if image.mode in ("RGBA", "LA"):
            log_message(f"Converting {image.mode} to RGB for JPEG output", verbose=verbose)
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            image = background
        elif image.mode != "RGB":
            image = image.convert("RGB")
        save_options["quality"] = max(1, min(jpeg_quality, 100))
    elif extension == ".webp":
        output_format = "WEBP"
        save_options["lossless"] = True
    else:
        if extension != ".png":
            log_message(f"Warning: Unknown output extension '{extension}'. Saving as PNG.", always_print=True)
            output_path = output_path.with_suffix(".png")
        output_format = "PNG"
        save_options["compress_level"] = max(0, min(png_compression, 9))

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(output_path, format=output_format, **save_options)
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Failed to save image to {output_path}: {e}") from e

    log_message(f"Saved {output_format} image to {output_path}", verbose=verbose)
    return output_path
