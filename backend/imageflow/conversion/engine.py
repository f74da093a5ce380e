"""Decode an image into a pixel surface and re-encode it with Pillow."""
import asyncio
import logging
from io import BytesIO

from PIL import Image

from imageflow.config import WEBP_METHOD
from imageflow.conversion.formats import PIL_FORMATS, can_encode, is_lossy, normalize_format
from imageflow.errors import DecodeError, EncodeError

logger = logging.getLogger("imageflow.engine")


class ConversionEngine:
    """Converts one image at a time. Every call decodes and encodes from scratch."""

    def __init__(self, webp_method: int = WEBP_METHOD):
        self.webp_method = webp_method

    async def convert(self, source_bytes: bytes, output_format: str, quality: float) -> bytes:
        """Convert ``source_bytes`` to ``output_format`` at ``quality`` (0-1).

        The Pillow work runs in a worker thread so the event loop keeps
        serving progress updates while an item is being converted.

        Raises DecodeError when the source is not a readable image and
        EncodeError when the format/quality cannot be produced.
        """
        return await asyncio.to_thread(self.convert_sync, source_bytes, output_format, quality)

    def convert_sync(self, source_bytes: bytes, output_format: str, quality: float) -> bytes:
        fmt = normalize_format(output_format)
        if not can_encode(fmt):
            raise EncodeError(f"Cannot encode to {output_format!r} with this Pillow build")
        if not (0.0 <= quality <= 1.0):
            raise EncodeError(f"quality must be between 0 and 1, got {quality}")
        surface = self.decode(source_bytes)
        try:
            return self.encode(surface, fmt, quality)
        finally:
            surface.close()

    @staticmethod
    def decode(source_bytes: bytes) -> Image.Image:
        """Return an RGBA surface at the image's natural size (first frame only)."""
        try:
            with Image.open(BytesIO(source_bytes)) as img:
                img.load()
                surface = img.convert("RGBA")
        except Image.DecompressionBombError as e:
            raise DecodeError(f"Image too large to decode: {e}") from e
        except (OSError, ValueError, SyntaxError, EOFError) as e:
            raise DecodeError(f"Cannot decode image: {e}") from e
        logger.debug("Decoded %sx%s surface", surface.width, surface.height)
        return surface

    def encode(self, surface: Image.Image, fmt: str, quality: float) -> bytes:
        q = int(round(quality * 100))
        save_kw: dict = {"format": PIL_FORMATS[fmt]}
        out_img = surface
        if fmt == "jpeg":
            out_img = surface.convert("RGB")
            save_kw.update({"quality": q, "optimize": True})
        elif fmt == "webp":
            save_kw.update({"quality": q, "method": self.webp_method})
        elif fmt == "avif":
            save_kw.update({"quality": q})
        elif fmt == "png":
            save_kw.update({"optimize": True})
        if not is_lossy(fmt):
            logger.debug("Quality %s ignored for lossless format %s", quality, fmt)

        buf = BytesIO()
        try:
            out_img.save(buf, **save_kw)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeError(f"Cannot encode {fmt} at quality {quality}: {e}") from e
        finally:
            if out_img is not surface:
                out_img.close()
        return buf.getvalue()
