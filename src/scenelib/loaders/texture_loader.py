"""
Texture Loader

Decodes the images behind glTF textures into pixel arrays with Pillow, and
caches the result per texture index for the duration of one load.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Iterable, Optional, Union

import numpy as np
from PIL import Image

from ..config.settings import DEFAULT_TEXTURE_WORKERS, FORCE_RGBA_TEXTURES
from ..errors import AccessorOutOfBounds, BufferUnavailable, ImageDecodeError, MalformedDocument
from .buffers import BufferResolver, read_uri_bytes
from .document import GltfDocument

logger = logging.getLogger(__name__)

# Sampler wrap modes
REPEAT = 10497
CLAMP_TO_EDGE = 33071
MIRRORED_REPEAT = 33648

# Pillow modes kept as-is, with their channel count
NATIVE_MODES = {'L': 1, 'LA': 2, 'RGB': 3, 'RGBA': 4}


@dataclass(frozen=True)
class Sampler:
    """Filtering and wrapping hints for a texture."""

    mag_filter: Optional[int] = None
    min_filter: Optional[int] = None
    wrap_s: int = REPEAT
    wrap_t: int = REPEAT


@dataclass
class Texture:
    """Decoded texture image."""

    index: int
    pixels: np.ndarray  # (height, width, channels) uint8
    sampler: Sampler
    name: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    def channel(self, channel_index: int) -> np.ndarray:
        """Single channel as a (height, width) array."""
        if not 0 <= channel_index < self.channels:
            raise IndexError(
                f"Texture {self.index} has {self.channels} channels, not {channel_index + 1}"
            )
        return self.pixels[:, :, channel_index]


class TextureLoader:
    """
    Loads texture images from a document.

    Images may live in external files, data URIs or buffer views.
    """

    def __init__(self, document: GltfDocument, buffers: BufferResolver,
                 force_rgba: bool = FORCE_RGBA_TEXTURES):
        """
        Initialize loader.

        Args:
            document: Document owning the textures
            buffers: Resolver for images stored in buffer views
            force_rgba: Convert every image to RGBA instead of keeping L/LA/RGB
        """
        self.document = document
        self.buffers = buffers
        self.force_rgba = force_rgba

    def load(self, texture_index: int) -> Texture:
        """
        Decode a texture.

        Args:
            texture_index: Index into the document's textures

        Returns:
            Decoded Texture

        Raises:
            ImageDecodeError: The image is missing, unreadable or corrupt
        """
        texture = self.document.texture(texture_index)
        if texture.source is None:
            raise ImageDecodeError(texture_index, "texture has no image source")

        image = self.document.image(texture.source)
        data = self._image_bytes(texture_index, image)

        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                pixels = self._to_pixels(img)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(texture_index, f"cannot decode image: {exc}") from exc

        result = Texture(
            index=texture_index,
            pixels=pixels,
            sampler=self._sampler(texture.sampler),
            name=image.name or texture.name,
            mime_type=image.mimeType,
        )
        logger.debug(
            "Decoded texture %d: %dx%d, %d channels",
            texture_index, result.width, result.height, result.channels
        )
        return result

    def _image_bytes(self, texture_index: int, image) -> bytes:
        if image.uri:
            try:
                return read_uri_bytes(self.document, image.uri)
            except (ValueError, OSError) as exc:
                raise ImageDecodeError(texture_index, f"cannot read image: {exc}") from exc

        if image.bufferView is not None:
            try:
                return bytes(self.buffers.view_bytes(image.bufferView))
            except (BufferUnavailable, AccessorOutOfBounds, MalformedDocument) as exc:
                raise ImageDecodeError(texture_index, f"cannot read image data: {exc}") from exc

        raise ImageDecodeError(texture_index, "image has neither a URI nor a buffer view")

    def _to_pixels(self, img: Image.Image) -> np.ndarray:
        if self.force_rgba or img.mode not in NATIVE_MODES:
            img = img.convert('RGBA')

        pixels = np.asarray(img, dtype=np.uint8)
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        pixels = np.ascontiguousarray(pixels)
        pixels.flags.writeable = False
        return pixels

    def _sampler(self, sampler_index: Optional[int]) -> Sampler:
        if sampler_index is None:
            return Sampler()
        sampler = self.document.sampler(sampler_index)
        return Sampler(
            mag_filter=sampler.magFilter,
            min_filter=sampler.minFilter,
            wrap_s=sampler.wrapS if sampler.wrapS is not None else REPEAT,
            wrap_t=sampler.wrapT if sampler.wrapT is not None else REPEAT,
        )


class TextureCache:
    """
    Per-load texture cache keyed by texture index.

    Each index is decoded at most once; failures are cached as well so a
    broken image is reported once and not retried.
    """

    def __init__(self, loader: TextureLoader, workers: int = DEFAULT_TEXTURE_WORKERS):
        """
        Initialize cache.

        Args:
            loader: Loader that decodes cache misses
            workers: Thread count for prefetching (1 disables the pool)
        """
        self.loader = loader
        self.workers = max(1, int(workers))
        self._entries: Dict[int, Union[Texture, ImageDecodeError]] = {}

    def __contains__(self, texture_index: int) -> bool:
        return texture_index in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, texture_index: int) -> Texture:
        """
        Get a decoded texture, decoding it on first request.

        Raises:
            ImageDecodeError: The texture cannot be decoded (also on repeat requests)
        """
        if texture_index not in self._entries:
            self._entries[texture_index] = self._produce(texture_index)

        entry = self._entries[texture_index]
        if isinstance(entry, ImageDecodeError):
            # Fresh instance per request; the cached one keeps its original traceback
            raise ImageDecodeError(texture_index, entry.reason) from entry
        return entry

    def _produce(self, texture_index: int) -> Union[Texture, ImageDecodeError]:
        try:
            return self.loader.load(texture_index)
        except ImageDecodeError as exc:
            return exc

    def prefetch(self, texture_indices: Iterable[int]):
        """
        Decode several textures ahead of use.

        Distinct indices are decoded in parallel when more than one worker
        is configured; every index still has exactly one producer.
        """
        pending = sorted({idx for idx in texture_indices if idx not in self._entries})
        if not pending:
            return

        if self.workers == 1 or len(pending) == 1:
            for texture_index in pending:
                self._entries[texture_index] = self._produce(texture_index)
            return

        logger.debug("Prefetching %d textures on %d workers", len(pending), self.workers)
        with ThreadPoolExecutor(max_workers=min(self.workers, len(pending))) as pool:
            results = list(pool.map(self._produce, pending))
        for texture_index, entry in zip(pending, results):
            self._entries[texture_index] = entry
