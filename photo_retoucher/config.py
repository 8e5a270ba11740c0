"""Configuration and constants for the Photo Retoucher project."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ViewportConfig:
    """Configuration for the interactive viewport."""
    max_zoom: float = 10.0
    zoom_step: float = 0.2  # Scale change per wheel notch
    zoomed_in_scale: float = 2.0  # Scale applied when entering zoom mode
    default_slider: float = 50.0  # Before/after divider, percent of width


VIEWPORT_CONFIG = ViewportConfig()


@dataclass(frozen=True)
class MaskConfig:
    """Configuration for mask drawing."""
    min_brush_width: float = 5.0  # Minimum stroke width in image pixels
    brush_reference_width: float = 1000.0  # Image width at which brush % == pixels
    default_brush_size: int = 30
    min_brush_size: int = 1
    max_brush_size: int = 100
    # Sentinel marker hue (#E62727), never a final pixel value
    stroke_color: tuple[int, int, int, int] = (230, 39, 39, 255)


MASK_CONFIG = MaskConfig()


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings for transient service failures."""
    max_retries: int = 5  # Attempts after the first
    base_delay_s: float = 1.0
    max_jitter_s: float = 0.5


RETRY_CONFIG = RetryConfig()


# Fallback used when the source dimensions cannot be read
FALLBACK_IMAGE_SIZE: tuple[int, int] = (1000, 1000)

# Thumbnail size for asset previews
PREVIEW_MAX_DIMENSION = 512

SUPPORTED_IMAGE_EXTENSIONS: tuple[str, ...] = (
    '.jpg', '.jpeg', '.png', '.webp', '.bmp', '.tiff', '.tif',
)

MIME_TYPES: dict[str, str] = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.bmp': 'image/bmp',
    '.tiff': 'image/tiff',
    '.tif': 'image/tiff',
}

# Generative service
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL_ID = "gemini-3-pro-image-preview"
DEFAULT_REQUEST_TIMEOUT_S = 180.0

# Environment
ENV_FILE = ".env"
API_KEY_NAMES: tuple[str, ...] = ("GEMINI_API_KEY", "API_KEY")

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
