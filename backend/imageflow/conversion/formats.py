"""Output format names, Pillow plugin mapping and host encoder support."""
import logging
from typing import Optional

from PIL import Image, features

from imageflow.config import IMAGE_OUTPUT_FORMATS

logger = logging.getLogger("imageflow.formats")

# format name -> Pillow format id
PIL_FORMATS = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
}

# Formats with a lossy quality parameter; quality is ignored for the rest
LOSSY_FORMATS = {"jpeg", "webp", "avif"}

# Formats whose encoder is an optional Pillow feature
_OPTIONAL_CODECS = {"webp": "webp", "avif": "avif"}

_ALIASES = {"jpg": "jpeg"}

MEDIA_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "avif": "image/avif",
}


def normalize_format(name: Optional[str]) -> str:
    """Lowercase a format name, strip a leading dot and resolve aliases (jpg -> jpeg)."""
    fmt = (name or "").strip().lower().lstrip(".")
    return _ALIASES.get(fmt, fmt)


def can_encode(fmt: str) -> bool:
    fmt = normalize_format(fmt)
    pil_name = PIL_FORMATS.get(fmt)
    if pil_name is None:
        return False
    Image.init()
    if pil_name not in Image.SAVE:
        return False
    codec = _OPTIONAL_CODECS.get(fmt)
    if codec and not features.check(codec):
        return False
    return True


def supported_output_formats() -> list[str]:
    """Configured output formats this Pillow build can encode, in configured order."""
    supported = [fmt for fmt in IMAGE_OUTPUT_FORMATS if can_encode(fmt)]
    missing = [fmt for fmt in IMAGE_OUTPUT_FORMATS if fmt not in supported]
    if missing:
        logger.debug("Output formats unavailable in this Pillow build: %s", ", ".join(missing))
    return supported


def is_lossy(fmt: str) -> bool:
    return normalize_format(fmt) in LOSSY_FORMATS


def extension_for(fmt: str) -> str:
    fmt = normalize_format(fmt)
    return "jpg" if fmt == "jpeg" else fmt


def media_type_for(fmt: str) -> str:
    return MEDIA_TYPES.get(normalize_format(fmt), "application/octet-stream")
