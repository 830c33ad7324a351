"""
PhotoDesk Backend: Upload Validation Gate
===========================================

What:  Checks an upload request and each of its files against the
       PhotoStandard before anything touches the disk.
How:   Owner name and file count first, then each file's extension,
       declared media type and byte size.
Who:   Called by IngestionPipeline in the `validating` stage; the owner
       name check is also used by the on-disk photo listing.

Policy:
    All-or-nothing at request level. A single rejected file fails the whole
    request before any file is staged.
"""

import logging
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional

from photodesk.exceptions import ValidationError
from photodesk.schemas.photo import PhotoStandard, UploadRequest

logger = logging.getLogger(__name__)


def validate_owner_name(owner_name: Optional[str]) -> str:
    """
    Return the stripped owner name or raise ValidationError.

    The name becomes a directory under the uploads root, so anything that
    could escape it (separators, '.', '..') is rejected.
    """
    name = (owner_name or "").strip()
    if not name:
        raise ValidationError(
            message="Photographer name is required.",
            field="photographerName",
        )
    if (
        name in {".", ".."}
        or PurePosixPath(name).name != name
        or PureWindowsPath(name).name != name
        or "\x00" in name
    ):
        raise ValidationError(
            message="Photographer name must not contain path separators.",
            field="photographerName",
            context={"photographer_name": name},
        )
    return name


def validate_size(filename: str, size: int, standard: PhotoStandard) -> None:
    """Reject files larger than standard.max_file_size."""
    if size > standard.max_file_size:
        max_mb = standard.max_file_size / (1024 * 1024)
        raise ValidationError(
            message=(
                f"File '{filename}' ({size / (1024 * 1024):.1f}MB) exceeds "
                f"the maximum of {max_mb:.0f}MB."
            ),
            field="photos",
            context={"filename": filename, "size": size, "max_size": standard.max_file_size},
        )


def validate_file(
    filename: str,
    media_type: Optional[str],
    size: int,
    standard: PhotoStandard,
) -> None:
    """
    Gate one candidate file.

    Accepts only when the extension (case-insensitive) AND the declared
    media type are both allowed, and the size is within the limit.

    Raises:
        ValidationError listing the accepted formats.
    """
    if not standard.accepts_extension(filename) or not standard.accepts_media_type(media_type):
        logger.info(
            "Rejected upload %s (media type %s): format not accepted",
            filename,
            media_type,
        )
        raise ValidationError(
            message=f"Only {standard.accepted_formats_label} formats are accepted.",
            field="photos",
            context={
                "filename": filename,
                "media_type": media_type,
                "accepted": list(standard.allowed_extensions),
            },
        )
    validate_size(filename, size, standard)


def validate_request(
    request: UploadRequest,
    standard: PhotoStandard,
    max_files: Optional[int] = None,
) -> str:
    """
    Validate a whole UploadRequest.

    Order: owner name → file list non-empty → file count → every file.
    Returns the normalized owner name.
    """
    owner_name = validate_owner_name(request.owner_name)

    if not request.files:
        raise ValidationError(message="No photos were selected.", field="photos")

    if max_files is not None and len(request.files) > max_files:
        raise ValidationError(
            message=f"At most {max_files} photos can be uploaded at once.",
            field="photos",
            context={"count": len(request.files), "max_files": max_files},
        )

    for blob in request.files:
        # Gate the real byte count, not only the size the client declared
        validate_file(blob.filename, blob.media_type, max(blob.size, len(blob.content)), standard)

    return owner_name
