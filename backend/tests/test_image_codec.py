"""
PhotoDesk Backend: Image Codec Unit Tests
===========================================

What:  Cover-crop geometry, format conversion and failure cleanup of
       ImageCodec.normalize.
How:   Real Pillow images written to tmp_path. Colors are compared with a
       tolerance because the output is lossy JPEG.
"""

import io

import pytest
from PIL import Image

from photodesk.exceptions import CodecError
from photodesk.services.image_codec import ImageCodec, cover_crop


def _is_color(pixel, expected, tolerance=40):
    return all(abs(channel - want) <= tolerance for channel, want in zip(pixel, expected))


RED = (220, 20, 20)
GREEN = (20, 200, 20)
BLUE = (20, 20, 220)
WHITE = (255, 255, 255)


class TestCoverCrop:

    @pytest.mark.parametrize("source", [(800, 600), (600, 800), (240, 320), (100, 50), (5000, 200)])
    def test_output_is_exactly_target_size(self, source):
        img = Image.new("RGB", source, GREEN)
        assert cover_crop(img, (240, 320)).size == (240, 320)


class TestNormalize:

    def setup_method(self):
        self.codec = ImageCodec()

    def test_landscape_jpeg_to_standard(self, tmp_path, make_image, standard):
        source = tmp_path / "in.jpg"
        source.write_bytes(make_image(800, 600))
        output = tmp_path / "Ali" / "foto_1.jpeg"

        result = self.codec.normalize(source, output, standard, "in.jpg")

        assert result.output_path == output
        assert (result.width, result.height) == (240, 320)
        assert result.format == "jpeg"
        assert result.byte_size == output.stat().st_size
        with Image.open(output) as img:
            assert img.format == "JPEG"
            assert img.size == (240, 320)

    def test_center_is_kept_and_sides_are_cropped(self, tmp_path, standard):
        # 800x600 → scale to 427x320, keep the central 240 columns,
        # i.e. source x in ~[175, 625]; both red strips fall outside
        img = Image.new("RGB", (800, 600), GREEN)
        img.paste(Image.new("RGB", (150, 600), RED), (0, 0))
        img.paste(Image.new("RGB", (150, 600), RED), (650, 0))
        source = tmp_path / "strips.png"
        img.save(source, format="PNG")

        self.codec.normalize(source, tmp_path / "out.jpeg", standard)

        with Image.open(tmp_path / "out.jpeg") as out:
            rgb = out.convert("RGB")
            for x, y in [(2, 2), (237, 2), (2, 317), (237, 317), (120, 160)]:
                assert _is_color(rgb.getpixel((x, y)), GREEN)

    def test_png_transparency_flattened_onto_white(self, tmp_path, make_image, standard):
        source = tmp_path / "clear.png"
        source.write_bytes(make_image(300, 400, fmt="PNG", mode="RGBA", color=(0, 0, 0, 0)))

        self.codec.normalize(source, tmp_path / "out.jpeg", standard)

        with Image.open(tmp_path / "out.jpeg") as out:
            assert out.mode == "RGB"
            assert _is_color(out.getpixel((120, 160)), WHITE, tolerance=10)

    def test_exif_orientation_applied_before_crop(self, tmp_path, standard):
        # Stored landscape (left red, right blue) with "rotate 90° CW" EXIF:
        # displayed portrait with red on top and blue at the bottom
        img = Image.new("RGB", (320, 240), RED)
        img.paste(Image.new("RGB", (160, 240), BLUE), (160, 0))
        exif = Image.Exif()
        exif[0x0112] = 6
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", exif=exif, quality=95)
        source = tmp_path / "rotated.jpg"
        source.write_bytes(buffer.getvalue())

        self.codec.normalize(source, tmp_path / "out.jpeg", standard)

        with Image.open(tmp_path / "out.jpeg") as out:
            assert _is_color(out.getpixel((180, 40)), RED)
            assert _is_color(out.getpixel((60, 280)), BLUE)

    def test_png_output_format(self, tmp_path, make_image, standard):
        png_standard = standard.model_copy(update={"format": "png"})
        source = tmp_path / "in.jpg"
        source.write_bytes(make_image(800, 600))

        result = self.codec.normalize(source, tmp_path / "out.png", png_standard)

        assert result.format == "png"
        with Image.open(tmp_path / "out.png") as out:
            assert out.format == "PNG"
            assert out.size == (240, 320)

    def test_undecodable_input_raises_codec_error(self, tmp_path, standard):
        source = tmp_path / "broken.jpg"
        source.write_bytes(b"this is not an image")
        output = tmp_path / "Ali" / "foto_1.jpeg"

        with pytest.raises(CodecError) as exc_info:
            self.codec.normalize(source, output, standard, "broken.jpg")

        assert exc_info.value.filename == "broken.jpg"
        assert exc_info.value.context["reason"] == "decode"
        assert exc_info.value.context["error"] == "unreadable image"
        assert str(tmp_path) not in str(exc_info.value.context)
        assert exc_info.value.status_code == 422
        assert not output.exists()

    def test_truncated_jpeg_raises_codec_error(self, tmp_path, make_image, standard):
        source = tmp_path / "cut.jpg"
        data = make_image(800, 600)
        source.write_bytes(data[: len(data) // 2])

        with pytest.raises(CodecError):
            self.codec.normalize(source, tmp_path / "out.jpeg", standard, "cut.jpg")
        assert not (tmp_path / "out.jpeg").exists()

    def test_unwritable_output_raises_codec_error_without_leftovers(self, tmp_path, make_image, standard):
        source = tmp_path / "in.jpg"
        source.write_bytes(make_image(800, 600))
        blocker = tmp_path / "Ali"
        blocker.write_text("a file where the owner directory should be")

        with pytest.raises(CodecError) as exc_info:
            self.codec.normalize(source, blocker / "foto_1.jpeg", standard, "in.jpg")

        assert exc_info.value.context["reason"] == "write"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Ali", "in.jpg"]
