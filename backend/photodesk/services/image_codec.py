"""
PhotoDesk Backend: Image Codec Adapter
========================================

What:  Decodes an uploaded image, cover-crops it to the standard canvas and
       re-encodes it at the standard format and quality.
How:   Pillow. EXIF orientation is applied, transparency is flattened onto
       white, then ImageOps.fit scales the image to cover the target box and
       crops the overflow around the center. The encoded result is written to
       a hidden sibling file and renamed into place.
Who:   Called by IngestionPipeline in the `encoding` stage, on a worker
       thread (CPU-bound, blocking).

Cover-crop vs fit:
    Output is always exactly width × height. Print layouts place the photos
    as uniform tiles (3×3 on one page), so the original aspect ratio is
    not preserved and nothing is letterboxed.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import NamedTuple

from PIL import Image, ImageOps, UnidentifiedImageError

from photodesk.exceptions import CodecError
from photodesk.schemas.photo import PhotoStandard

logger = logging.getLogger(__name__)


class NormalizedImage(NamedTuple):
    output_path: Path
    width: int
    height: int
    byte_size: int
    format: str


def _flatten(img: Image.Image) -> Image.Image:
    """Convert any mode to RGB, compositing transparent pixels onto white."""
    if img.mode == "RGB":
        return img
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(background, rgba).convert("RGB")
    return img.convert("RGB")


def cover_crop(img: Image.Image, size) -> Image.Image:
    """Scale to cover `size` and crop the overflow equally from both sides."""
    return ImageOps.fit(
        img,
        size,
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )


class ImageCodec:
    """
    Pillow-backed normalizer. Stateless; one shared instance is enough.
    """

    def normalize(
        self,
        input_path: Path,
        output_path: Path,
        standard: PhotoStandard,
        original_name: str = "",
    ) -> NormalizedImage:
        """
        Normalize the image at `input_path` into `output_path`.

        Args:
            input_path: Staged upload to decode.
            output_path: Final location inside the owner's directory.
            standard: Target geometry, format and quality.
            original_name: Client filename, reported in errors.

        Returns:
            NormalizedImage with the written path, geometry and byte size.

        Raises:
            CodecError if the input cannot be decoded or the output cannot be
            written. No partial output file remains in either case.
        """
        filename = original_name or Path(input_path).name
        output_path = Path(output_path)

        try:
            with Image.open(input_path) as img:
                # Hint the JPEG decoder about the target size (decodes at a
                # reduced scale when the source is much larger)
                if img.format == "JPEG":
                    img.draft("RGB", (standard.width * 2, standard.height * 2))
                oriented = ImageOps.exif_transpose(img)
                canvas = cover_crop(_flatten(oriented), standard.size)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.warning("Could not decode %s: %s", filename, str(e))
            raise CodecError(
                message=f"Could not process photo '{filename}'. The file is damaged or not a supported image.",
                filename=filename,
                context={"reason": "decode", "error": "unreadable image"},
            )

        # Hidden sibling so a crash never leaves a half-written foto_*.jpeg
        tmp_path = output_path.with_name(f".{output_path.name}.{uuid.uuid4().hex[:8]}.part")
        save_kwargs = {"format": standard.pillow_format, "optimize": True}
        if standard.format in ("jpeg", "webp"):
            save_kwargs["quality"] = standard.quality
        if standard.format == "jpeg":
            save_kwargs["progressive"] = True

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            canvas.save(tmp_path, **save_kwargs)
            os.replace(tmp_path, output_path)
            byte_size = output_path.stat().st_size
        except (OSError, ValueError) as e:
            logger.error("Could not write %s to %s: %s", filename, output_path, str(e))
            for leftover in (tmp_path, output_path):
                try:
                    os.remove(leftover)
                except FileNotFoundError:
                    pass
                except OSError as cleanup_error:
                    logger.warning("Could not remove partial output %s: %s", leftover, cleanup_error)
            raise CodecError(
                message=f"Could not save processed photo '{filename}'.",
                filename=filename,
                context={"reason": "write", "error": "could not write output"},
            )

        width, height = canvas.size
        logger.debug(
            "Normalized %s → %s (%dx%d, %d bytes)",
            filename,
            output_path.name,
            width,
            height,
            byte_size,
        )
        return NormalizedImage(
            output_path=output_path,
            width=width,
            height=height,
            byte_size=byte_size,
            format=standard.format,
        )


image_codec = ImageCodec()
