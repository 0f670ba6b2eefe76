"""
Shared data types and helpers for the tamper-detection engine.

Provides:
- PixelBuffer, Region and MetadataCues data classes
- Image I/O helpers (load_pixel_buffer, metadata_cues_from_file, save_image)
- Visualisation helpers (apply_colormap, draw_regions)
- JSON helpers (json_sanitize, save_json)
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
from PIL import Image


# ── Data classes ─────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """A decoded raster image: flat, row-major RGBA samples (8 bit)."""
    width: int
    height: int
    data: np.ndarray                  # shape (width*height*4,), uint8, read-only

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"negative dimensions {self.width}x{self.height}")
        data = np.array(self.data, dtype=np.uint8).reshape(-1)
        expected = self.width * self.height * 4
        if data.size != expected:
            raise ValueError(
                f"RGBA buffer has {data.size} samples, expected {expected} "
                f"for {self.width}x{self.height}"
            )
        data.flags.writeable = False
        object.__setattr__(self, "data", data)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """
        Build a buffer from an HxW, HxWx3 or HxWx4 uint8 array.

        Grayscale is replicated to RGB; missing alpha is set to 255.
        """
        arr = np.asarray(arr)
        if arr.ndim == 2:
            arr = np.stack([arr, arr, arr], axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"unsupported array shape {arr.shape}")
        h, w = arr.shape[:2]
        if arr.shape[2] == 3:
            alpha = np.full((h, w, 1), 255, dtype=np.uint8)
            arr = np.concatenate([arr.astype(np.uint8), alpha], axis=2)
        return cls(width=w, height=h, data=arr.astype(np.uint8))

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelBuffer":
        return cls.from_array(np.array(img.convert("RGBA"), dtype=np.uint8))

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def rgba(self) -> np.ndarray:
        """Read-only HxWx4 view of the samples."""
        return self.data.reshape(self.height, self.width, 4)

    def rgb(self) -> np.ndarray:
        """Read-only HxWx3 view (alpha dropped)."""
        return self.rgba()[..., :3]

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.rgba()))


@dataclass(frozen=True)
class Region:
    """A rectangular area flagged as possibly tampered."""
    x: int
    y: int
    width: int
    height: int
    confidence: float                 # strength of evidence [0, 1]

    def __post_init__(self):
        if self.x < 0 or self.y < 0:
            raise ValueError(f"negative region offset ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"empty region {self.width}x{self.height}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence {self.confidence} outside [0, 1]")

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def within(self, width: int, height: int) -> bool:
        return self.x + self.width <= width and self.y + self.height <= height

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": round(self.confidence, 4),
        }


@dataclass(frozen=True)
class MetadataCues:
    """Summary signals supplied by the external metadata inspector."""
    has_metadata: bool = True
    warning_count: int = 0

    def __post_init__(self):
        if self.warning_count < 0:
            raise ValueError(f"warning_count must be >= 0, got {self.warning_count}")


def mean_confidence(regions: Sequence[Region]) -> float:
    """Arithmetic mean of region confidences (0.0 for an empty list)."""
    if not regions:
        return 0.0
    return sum(r.confidence for r in regions) / len(regions)


# ── Image I/O helpers ────────────────────────────────────────────────

def load_pixel_buffer(path: Union[str, Path]) -> PixelBuffer:
    """
    Decode any image Pillow understands into an RGBA PixelBuffer.

    Parameters
    ----------
    path : str or Path
        Path to the image file.

    Returns
    -------
    PixelBuffer

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    PIL.UnidentifiedImageError
        If the file cannot be decoded as an image.
    """
    with Image.open(Path(path)) as img:
        return PixelBuffer.from_image(img)


def metadata_cues_from_file(
    path: Union[str, Path],
    warning_count: int = 0,
) -> MetadataCues:
    """Probe a file for EXIF presence; *warning_count* is passed through."""
    with Image.open(Path(path)) as img:
        exif = img.getexif() if hasattr(img, "getexif") else None
        has_metadata = bool(exif)
    return MetadataCues(has_metadata=has_metadata, warning_count=warning_count)


def save_image(
    img: np.ndarray,
    output_dir: Union[str, Path],
    name: str,
) -> Path:
    """Write a BGR or grayscale array to *output_dir/name* via OpenCV."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = out / name
    cv2.imwrite(str(path), img)
    return path


# ── Visualisation ────────────────────────────────────────────────────

def apply_colormap(
    heatmap: np.ndarray,
    size: Tuple[int, int],
    colormap: int = cv2.COLORMAP_JET,
) -> np.ndarray:
    """
    Colour-map a [0, 1] block heatmap and upsample it to *size* (w, h).

    Values are not re-normalised: 0 maps to the bottom of the colormap
    and 1 to the top, so heatmaps from different images are comparable.

    Returns
    -------
    np.ndarray
        HxWx3 uint8 array in BGR order.
    """
    w, h = size
    if heatmap.size == 0 or w == 0 or h == 0:
        return np.zeros((h, w, 3), dtype=np.uint8)
    g = (np.clip(heatmap, 0.0, 1.0) * 255.0).round().astype(np.uint8)
    g = cv2.resize(g, (w, h), interpolation=cv2.INTER_NEAREST)
    return cv2.applyColorMap(g, colormap)


def draw_regions(
    buffer: PixelBuffer,
    regions: Sequence[Region],
    color: Tuple[int, int, int] = (0, 0, 255),
    thickness: int = 2,
) -> np.ndarray:
    """Draw region boxes (red in BGR) on a BGR copy of *buffer*."""
    vis = cv2.cvtColor(np.ascontiguousarray(buffer.rgb()), cv2.COLOR_RGB2BGR)
    for r in regions:
        pt1 = (r.x, r.y)
        pt2 = (r.x + r.width - 1, r.y + r.height - 1)
        cv2.rectangle(vis, pt1, pt2, color, thickness)
    return vis


# ── Serialisation ────────────────────────────────────────────────────

def json_sanitize(obj: Any) -> Any:
    """Convert numpy types, Paths and dataclasses to JSON-safe values."""
    if obj is None:
        return None
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return json_sanitize(obj.to_dict())
    if hasattr(obj, "__dataclass_fields__"):
        return {k: json_sanitize(v) for k, v in asdict(obj).items()}
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return json_sanitize(float(obj))
    if isinstance(obj, np.ndarray):
        return json_sanitize(obj.tolist())
    if isinstance(obj, (list, tuple)):
        return [json_sanitize(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): json_sanitize(v) for k, v in obj.items()}
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return None
    if isinstance(obj, (int, float, str, bool)):
        return obj
    return str(obj)


def save_json(data: Any, out_path: Union[str, Path]) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(json_sanitize(data), f, ensure_ascii=False, indent=2)
    return out_path


# ── Source file facts ────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageFileInfo:
    """Container facts about an image file, as shown in reports."""
    file_name: str
    size_bytes: int
    format: Optional[str]             # Pillow format name, e.g. "JPEG"

    def to_dict(self) -> Dict[str, Any]:
        return {"file_name": self.file_name, "size_bytes": self.size_bytes, "format": self.format}


def image_file_info(path: Union[str, Path]) -> ImageFileInfo:
    path = Path(path)
    with Image.open(path) as img:
        fmt = img.format
    return ImageFileInfo(file_name=path.name, size_bytes=path.stat().st_size, format=fmt)
