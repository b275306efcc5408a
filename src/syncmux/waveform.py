"""Waveform images for visual alignment feedback."""

import io
import threading
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw

from .audio import SourceLike, extract_samples
from .models import ANALYSIS_WINDOW

WAVEFORM_SIZE = (1920, 240)
WAVEFORM_COLOR = "#1f77b4"

# Vertical time-reference lines: one every 384 px (0.6 s of a 3 s window)
GRID_SPACING = 384
GRID_THICKNESS = 2
GRID_COLOR = (255, 255, 255, 51)  # white at 20% opacity


def draw_waveform(
    samples: np.ndarray,
    size: tuple[int, int] = WAVEFORM_SIZE,
    grid_spacing: int = GRID_SPACING,
) -> Image.Image:
    """
    Draw per-column peak amplitude of a sample buffer on a transparent canvas.

    Args:
        samples: Normalized samples in [-1.0, 1.0]
        size: Output (width, height) in pixels
        grid_spacing: Distance between gridlines in pixels (0 disables them)

    Returns:
        RGBA PIL Image
    """
    width, height = size
    image = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)

    center = (height - 1) / 2
    samples = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)

    for x, column in enumerate(np.array_split(samples, width)):
        if column.size == 0:
            continue
        top = round(center - float(column.max()) * center)
        bottom = round(center - float(column.min()) * center)
        draw.line([(x, top), (x, bottom)], fill=WAVEFORM_COLOR)

    if grid_spacing > 0:
        overlay = Image.new("RGBA", size, (0, 0, 0, 0))
        grid = ImageDraw.Draw(overlay)
        for x in range(grid_spacing, width, grid_spacing):
            grid.rectangle([x, 0, x + GRID_THICKNESS - 1, height - 1], fill=GRID_COLOR)
        image = Image.alpha_composite(image, overlay)

    return image


def render_waveform(
    source: SourceLike,
    start_time: float = 0.0,
    duration: float = ANALYSIS_WINDOW,
    size: tuple[int, int] = WAVEFORM_SIZE,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Render the waveform of a source window as PNG bytes."""
    samples = extract_samples(
        source, start_time=start_time, duration=duration, cancel=cancel
    )
    image = draw_waveform(samples, size=size)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
