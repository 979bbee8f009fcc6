# File: backend/attendance_engine/services/watermark_service.py
"""Burn check-in evidence into the photo pixels."""
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from attendance_engine.models.attendance import Position
from attendance_engine.utils.exceptions import CaptureFailure
from attendance_engine.utils.helpers import format_meters

logger = logging.getLogger(__name__)

# (font size at 640px width, RGBA fill) per line style
STYLES = {
    'title': (16, (255, 255, 255, 255)),
    'body': (13, (224, 224, 224, 255)),
    'label': (13, (255, 255, 255, 255)),
    'address': (12, (224, 224, 224, 255)),
    'valid': (12, (74, 222, 128, 255)),
    'invalid': (12, (248, 113, 113, 255)),
    'footer': (10, (176, 176, 176, 255)),
}
LINE_SPACING = 6
PADDING = 10
BASE_WIDTH = 640


@dataclass
class WatermarkInfo:
    """What gets written on the photo."""
    activity_name: str
    captured_at: datetime
    user_name: str
    user_id: str
    address: Optional[str] = None
    position: Optional[Position] = None
    distance_meters: Optional[float] = None
    is_valid: Optional[bool] = None


class WatermarkService:
    """Draws a semi-transparent evidence panel at the bottom of the photo."""

    def __init__(self, font_path: Optional[str] = None, max_chars_per_line: int = 60,
                 jpeg_quality: int = 90):
        self.font_path = font_path
        self.max_chars_per_line = max_chars_per_line
        self.jpeg_quality = jpeg_quality

    def wrap_address(self, address: str) -> List[str]:
        """
        Split an address into lines of at most max_chars_per_line.

        Breaks after the last comma in range when it sits at or beyond 60% of
        the width, else after the last space under the same rule, else hard.
        """
        width = self.max_chars_per_line
        threshold = width * 0.6
        lines = []
        remaining = (address or '').strip()

        while remaining:
            if len(remaining) <= width:
                lines.append(remaining)
                break

            break_point = width
            last_comma = remaining.rfind(',', 0, width + 1)
            last_space = remaining.rfind(' ', 0, width + 1)
            if last_comma >= threshold:
                break_point = last_comma + 1
            elif last_space >= threshold:
                break_point = last_space + 1

            line = remaining[:break_point].strip()
            if line:
                lines.append(line)
            remaining = remaining[break_point:].strip()

        return lines

    def build_lines(self, info: WatermarkInfo) -> List[Tuple[str, str]]:
        """Watermark text as (text, style) pairs, top to bottom."""
        lines = [
            (f"Điểm danh - {info.activity_name or 'N/A'}", 'title'),
            (info.captured_at.strftime('%d/%m/%Y %H:%M:%S'), 'body'),
            (info.user_name or 'N/A', 'body'),
            ('Vị trí:', 'label'),
        ]

        if info.address and info.address.strip():
            address_lines = self.wrap_address(info.address)
        elif info.position is not None:
            address_lines = [f"Tọa độ: {info.position.latitude:.6f}, {info.position.longitude:.6f}"]
        else:
            address_lines = ['Không thể xác định vị trí']
        lines.extend((line, 'address') for line in address_lines)

        if info.distance_meters is not None:
            distance = format_meters(info.distance_meters)
            if info.is_valid:
                lines.append((f"Hợp lệ - Cách {distance}m", 'valid'))
            else:
                lines.append((f"Không hợp lệ - Cách {distance}m", 'invalid'))

        lines.append((f"ID: {info.user_id or 'N/A'}", 'footer'))
        return lines

    def _font(self, size: int):
        if self.font_path:
            try:
                return ImageFont.truetype(self.font_path, size)
            except OSError:
                logger.warning("Watermark font %s could not be loaded; using default", self.font_path)
        return ImageFont.load_default(size=size)

    def apply(self, image: Image.Image, info: WatermarkInfo) -> Image.Image:
        """Return a new RGB image with the evidence panel drawn in."""
        base = ImageOps.exif_transpose(image).convert('RGBA')
        scale = max(1.0, base.width / BASE_WIDTH)

        overlay = Image.new('RGBA', base.size, (255, 255, 255, 0))
        draw = ImageDraw.Draw(overlay)

        rendered = []
        panel_height = PADDING * 2
        for text, style in self.build_lines(info):
            size, fill = STYLES[style]
            font = self._font(int(size * scale))
            bbox = draw.textbbox((0, 0), text, font=font)
            height = bbox[3] - bbox[1]
            rendered.append((text, font, fill, height))
            panel_height += height + int(LINE_SPACING * scale)

        margin = int(PADDING * scale)
        top = max(0, base.height - panel_height - margin)
        draw.rectangle(
            [(margin, top), (base.width - margin, base.height - margin)],
            fill=(0, 0, 0, 191),
            outline=(255, 255, 255, 77)
        )

        y = top + PADDING
        for text, font, fill, height in rendered:
            draw.text((margin * 2, y), text, fill=fill, font=font)
            y += height + int(LINE_SPACING * scale)

        return Image.alpha_composite(base, overlay).convert('RGB')

    def render_bytes(self, photo: bytes, info: WatermarkInfo) -> bytes:
        """Decode a frame, watermark it and re-encode as JPEG."""
        try:
            image = Image.open(io.BytesIO(photo))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise CaptureFailure('Ảnh chụp không hợp lệ. Vui lòng chụp lại.') from e

        buffer = io.BytesIO()
        self.apply(image, info).save(buffer, format='JPEG', quality=self.jpeg_quality)
        return buffer.getvalue()
