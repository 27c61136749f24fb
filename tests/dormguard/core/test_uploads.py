import os

import pytest

from dormguard.core import uploads


@pytest.mark.parametrize('filename', ['a.jpg', 'a.JPEG', 'b.png', 'c.gif', 'd.WebP'])
def test_allowed_extensions_are_case_insensitive(filename: str) -> None:
    assert uploads.photo_extension(filename) in uploads.ALLOWED_EXTENSIONS


def test_validate_photo_returns_lowercase_extension(png_bytes: bytes) -> None:
    assert uploads.validate_photo('evidence.PNG', png_bytes) == '.png'


@pytest.mark.parametrize('filename', ['evidence.bmp', 'evidence.svg', 'evidence.png.exe', 'evidence'])
def test_validate_photo_rejects_disallowed_extensions(filename: str, png_bytes: bytes) -> None:
    with pytest.raises(uploads.PhotoRejected) as exception_info:
        uploads.validate_photo(filename, png_bytes)

    assert str(exception_info.value) == '仅支持 JPG/PNG/GIF/WebP 格式的图片'


def test_validate_photo_rejects_oversized_file_before_anything_else() -> None:
    with pytest.raises(uploads.PhotoRejected) as exception_info:
        uploads.validate_photo('evidence.exe', b'\0' * 11, max_bytes=10)

    assert str(exception_info.value).startswith('照片大小不能超过')


def test_validate_photo_rejects_non_image_content_with_image_extension() -> None:
    with pytest.raises(uploads.PhotoRejected) as exception_info:
        uploads.validate_photo('evidence.jpg', b'<html><script>alert(1)</script></html>')

    assert str(exception_info.value) == '文件类型不合法'


def test_detect_image_mime_recognises_formats(png_bytes: bytes) -> None:
    assert uploads.detect_image_mime(png_bytes) == 'image/png'
    assert uploads.detect_image_mime(b'plain text') == ''


def test_build_photo_filename_embeds_user_and_extension() -> None:
    filename = uploads.build_photo_filename(42, '.jpg')
    timestamp, suffix = filename.split('_', 1)

    assert timestamp.isdigit()
    assert suffix == '42.jpg'


def test_save_and_remove_photo(upload_dir, png_bytes: bytes) -> None:
    filename = uploads.save_photo(png_bytes, 3, '.png')

    stored = upload_dir / filename
    assert stored.read_bytes() == png_bytes

    assert uploads.remove_photo(filename) is True
    assert not stored.exists()


def test_remove_photo_ignores_missing_files(upload_dir) -> None:
    assert uploads.remove_photo('does-not-exist.png') is False
    assert uploads.remove_photo('') is False


def test_photo_full_path_stays_inside_upload_dir(upload_dir) -> None:
    path = uploads.photo_full_path('../../etc/passwd')

    assert os.path.dirname(path) == str(upload_dir)
