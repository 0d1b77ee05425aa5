"""Image input type and pluggable cache-key derivation.

The cache key must be stable for "the same image" without storing image bytes.
Three strategies are available:

- sha256 (default): content hash of the raw bytes.
- legacy: filename + size, as older cache rows were keyed. Two different images
  with the same name and size collide; a renamed re-upload misses.
- phash: perceptual hash, so re-encodes or resizes of one picture share a key.
"""

import hashlib
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable

from scoutscore.scoring.errors import InvalidScoringInputError

PHASH_HASH_SIZE = 16


@dataclass(frozen=True)
class ImageFile:
    """An uploaded image: original filename, raw bytes, and declared content type."""

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path | str) -> "ImageFile":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, data=path.read_bytes(), content_type=content_type)


def _sha256_key(image: ImageFile) -> str:
    return "sha256:" + hashlib.sha256(image.data).hexdigest()


def _legacy_key(image: ImageFile) -> str:
    return f"{image.filename}{image.size}"


def _phash_key(image: ImageFile) -> str:
    import imagehash
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(BytesIO(image.data)) as img:
            rgb = img.convert("RGB") if img.mode != "RGB" else img
            return "phash:" + str(imagehash.phash(rgb, hash_size=PHASH_HASH_SIZE))
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidScoringInputError(f"Image {image.filename!r} could not be decoded: {e}") from e


IMAGE_KEY_STRATEGIES: dict[str, Callable[[ImageFile], str]] = {
    "sha256": _sha256_key,
    "legacy": _legacy_key,
    "phash": _phash_key,
}


def compute_image_key(image: ImageFile, strategy: str = "sha256") -> str:
    """Return the cache key for image under the named strategy."""
    try:
        fn = IMAGE_KEY_STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown image key strategy: {strategy}") from None
    if not image.data:
        raise InvalidScoringInputError(f"Image {image.filename!r} is empty")
    return fn(image)
