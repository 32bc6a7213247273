"""Base64 image payload helpers.

Providers are not consistent about where the image lands in a completed job's
``output``: a dict keyed ``image_b64`` (or a close variant), a list of such
dicts, a bare base64 string, or a ``data:`` URL. ``extract_image_b64`` finds it;
``decode_image`` proves it is an image without touching the pixels.
"""

import base64
import binascii
import io
from typing import Any, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from zimage.errors import UpstreamMalformed

# Keys checked in order inside an output object
IMAGE_KEYS = ("image_b64", "image_base64", "image", "b64_json")

_DATA_URL_PREFIX = "data:"


def _strip_data_url(value: str) -> str:
    if value.startswith(_DATA_URL_PREFIX) and "," in value:
        return value.split(",", 1)[1]
    return value


def extract_image_b64(output: Any) -> Optional[str]:
    """Return the first base64 image string found in a provider ``output``."""
    if isinstance(output, str):
        value = output.strip()
        return _strip_data_url(value) or None

    if isinstance(output, list):
        for item in output:
            found = extract_image_b64(item)
            if found:
                return found
        return None

    if isinstance(output, dict):
        for key in IMAGE_KEYS:
            value = output.get(key)
            if isinstance(value, str) and value.strip():
                return _strip_data_url(value.strip())
        images = output.get("images")
        if images:
            return extract_image_b64(images)

    return None


def decode_image(image_b64: Optional[str]) -> Tuple[bytes, str]:
    """Decode a base64 image and identify its format.

    Returns:
        (raw bytes, lowercase format name such as ``"png"``)

    Raises:
        UpstreamMalformed: missing data, invalid base64, or not an image.
    """
    if not image_b64:
        raise UpstreamMalformed("COMPLETED but no image_b64 in output")

    try:
        raw = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError):
        raise UpstreamMalformed("COMPLETED but image_b64 is not valid base64")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = (img.format or "png").lower()
    except (UnidentifiedImageError, OSError):
        raise UpstreamMalformed("COMPLETED but image_b64 is not a decodable image")

    return raw, fmt
