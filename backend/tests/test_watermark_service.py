"""Test the photo evidence watermark."""
import io
from datetime import datetime

import pytest
from PIL import Image

from attendance_engine.models.attendance import Position
from attendance_engine.services.watermark_service import WatermarkInfo, WatermarkService
from attendance_engine.utils.exceptions import CaptureFailure

from conftest import make_photo


def make_info(**kwargs):
    values = dict(
        activity_name='Mùa hè xanh',
        captured_at=datetime(2025, 3, 10, 7, 47, 5),
        user_name='Nguyễn Văn A',
        user_id='u1',
        address='Số 1, Đường Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh',
        position=Position(10.7769, 106.7009),
        distance_meters=12.5,
        is_valid=True
    )
    values.update(kwargs)
    return WatermarkInfo(**values)


def test_build_lines():
    """Test the text content and styles, top to bottom."""
    lines = WatermarkService().build_lines(make_info())
    assert lines[0] == ('Điểm danh - Mùa hè xanh', 'title')
    assert lines[1] == ('10/03/2025 07:47:05', 'body')
    assert lines[2] == ('Nguyễn Văn A', 'body')
    assert lines[3] == ('Vị trí:', 'label')
    assert lines[4][1] == 'address'
    assert lines[-2] == ('Hợp lệ - Cách 13m', 'valid')
    assert lines[-1] == ('ID: u1', 'footer')


def test_coordinates_when_no_address():
    lines = WatermarkService().build_lines(make_info(address=None, distance_meters=250.0, is_valid=False))
    texts = [text for text, _ in lines]
    assert 'Tọa độ: 10.776900, 106.700900' in texts
    assert ('Không hợp lệ - Cách 250m', 'invalid') in lines


def test_no_position_and_no_distance():
    lines = WatermarkService().build_lines(make_info(address='  ', position=None, distance_meters=None))
    texts = [text for text, _ in lines]
    assert 'Không thể xác định vị trí' in texts
    assert not any(text.startswith(('Hợp lệ', 'Không hợp lệ')) for text in texts)


def test_wrap_address_prefers_commas():
    """Test long addresses break after a comma late enough in the line."""
    service = WatermarkService(max_chars_per_line=30)
    lines = service.wrap_address('Số 1, Đường Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh')

    assert all(len(line) <= 30 for line in lines)
    assert lines[0] == 'Số 1, Đường Lê Lợi,'
    assert ' '.join(lines).replace(' ,', ',') == \
        'Số 1, Đường Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh'


def test_wrap_address_hard_break():
    lines = WatermarkService(max_chars_per_line=10).wrap_address('x' * 25)
    assert lines == ['x' * 10, 'x' * 10, 'x' * 5]


def test_render_bytes_produces_jpeg():
    """Test the watermarked output keeps the frame size and changes the pixels."""
    photo = make_photo(size=(640, 480), color='white', fmt='PNG')
    output = WatermarkService().render_bytes(photo, make_info())

    image = Image.open(io.BytesIO(output))
    assert image.format == 'JPEG'
    assert image.size == (640, 480)
    # bottom of the frame is covered by the dark panel
    r, g, b = image.getpixel((600, 465))
    assert max(r, g, b) < 128
    # top of the frame is untouched
    assert min(image.getpixel((320, 5))) > 200


def test_render_bytes_rejects_garbage():
    with pytest.raises(CaptureFailure):
        WatermarkService().render_bytes(b'\x00\x01garbage', make_info())


def test_missing_font_falls_back(tmp_path):
    service = WatermarkService(font_path=str(tmp_path / 'missing.ttf'))
    output = service.render_bytes(make_photo(), make_info())
    assert output[:2] == b'\xff\xd8'
