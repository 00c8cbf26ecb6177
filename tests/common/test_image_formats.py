"""Tests for the PNG, BMP and GIF decoders."""

import struct
import zlib

import pytest

from binscope.bmp import BI_BITFIELDS, decode_bmp
from binscope.config import DecodeLimits
from binscope.errors import (
    BoundsError,
    InvalidHeaderField,
    InvalidMagic,
    LimitExceeded,
    UnsupportedBlock,
    Utf8Error,
)
from binscope.gif import (
    APPLICATION_LABEL,
    Extension,
    GraphicControlExtension,
    ImageDescriptor,
    decode_gif,
)
from binscope.png import (
    Chromaticities,
    GifApplication,
    GifGraphicControl,
    IccProfile,
    ImageOffset,
    PhysicalScale,
    StereoMode,
    SuggestedPaletteEntry,
    Text,
    Timestamp,
    decode_png,
)
from binary_test_utils import build_bmp, build_gif, build_png, png_chunk

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Header, logical screen descriptor and the 4-entry global colour table
GIF_FIRST_BLOCK = 6 + 7 + 12


class TestPng:
    """Tests for decode_png."""

    def test_header(self):
        image = decode_png(build_png(width=4, height=2))
        header = image.header
        assert (header.width, header.height) == (4, 2)
        assert header.bit_depth == 8
        assert header.color_type_name == "indexed"

    def test_chunks(self):
        image = decode_png(build_png())
        assert [c.type for c in image.chunks] == ["IHDR", "PLTE", "tEXt", "IDAT", "IEND"]
        assert all(c.crc_ok for c in image.chunks)
        assert image.chunks[0].offset == len(PNG_SIGNATURE)
        assert image.chunks_of("IDAT")[0].is_critical
        assert not image.chunks_of("tEXt")[0].is_critical

    def test_palette_and_text(self):
        image = decode_png(build_png(text={"Title": "binscope", "Author": "Zoë"}))
        assert image.palette_entries == 3
        assert image.text == [("Title", "binscope"), ("Author", "Zoë")]

    def test_bad_crc_is_recorded(self):
        """A CRC mismatch is reported on the chunk, not raised."""
        ihdr = struct.pack(">IIBBBBB", 1, 1, 8, 0, 0, 0, 0)
        data = PNG_SIGNATURE + png_chunk(b"IHDR", ihdr, crc=0) + png_chunk(b"IEND", b"")
        image = decode_png(data)
        assert not image.chunks[0].crc_ok
        assert image.chunks[1].crc_ok

    def test_stops_at_iend(self):
        data = build_png() + b"trailing garbage"
        assert decode_png(data).chunks[-1].type == "IEND"

    def test_bad_signature(self):
        data = bytearray(build_png())
        data[1] = ord("p")
        with pytest.raises(InvalidMagic):
            decode_png(data)

    def test_first_chunk_not_ihdr(self):
        data = PNG_SIGNATURE + png_chunk(b"IEND", b"")
        with pytest.raises(InvalidHeaderField, match="IHDR"):
            decode_png(data)

    def test_invalid_chunk_type(self):
        data = bytearray(build_png())
        data[len(PNG_SIGNATURE) + 4] = ord("1")
        with pytest.raises(InvalidHeaderField, match="chunk type"):
            decode_png(data)

    def test_bad_palette_length(self):
        ihdr = png_chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 3, 0, 0, 0))
        data = PNG_SIGNATURE + ihdr + png_chunk(b"PLTE", b"\x00" * 4) + png_chunk(b"IEND", b"")
        with pytest.raises(InvalidHeaderField, match="PLTE"):
            decode_png(data)

    def test_text_without_separator(self):
        ihdr = png_chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 0, 0, 0, 0))
        data = PNG_SIGNATURE + ihdr + png_chunk(b"tEXt", b"Title") + png_chunk(b"IEND", b"")
        with pytest.raises(InvalidHeaderField, match="separator"):
            decode_png(data)

    def test_missing_iend(self):
        data = build_png()
        with pytest.raises(BoundsError):
            decode_png(data[:-12])

    def test_chunk_limit(self):
        with pytest.raises(LimitExceeded):
            decode_png(build_png(), DecodeLimits(max_record_count=2))


class TestBmp:
    """Tests for decode_bmp."""

    @pytest.mark.parametrize(
        "dib_size,name",
        [
            (12, "BITMAPCOREHEADER"),
            (40, "BITMAPINFOHEADER"),
            (52, "BITMAPV2INFOHEADER"),
            (56, "BITMAPV3INFOHEADER"),
            (108, "BITMAPV4HEADER"),
            (124, "BITMAPV5HEADER"),
        ],
    )
    def test_dib_revisions(self, dib_size: int, name: str):
        image = decode_bmp(build_bmp(dib_size=dib_size))
        dib = image.dib_header
        assert dib.name == name
        assert (dib.width, dib.height, dib.bit_count) == (2, 2, 8)
        assert image.color_table_entries == 256

    def test_file_header(self):
        data = build_bmp()
        header = decode_bmp(data).file_header
        assert header.magic == b"BM"
        assert header.file_size == len(data)
        assert header.pixel_offset == 14 + 40 + 256 * 4

    def test_later_revision_fields(self):
        """Fields a revision lacks stay None."""
        info = decode_bmp(build_bmp(dib_size=40)).dib_header
        assert info.red_mask is None
        assert info.gamma is None
        v5 = decode_bmp(build_bmp(dib_size=124)).dib_header
        assert v5.red_mask == 0
        assert v5.gamma == (0, 0, 0)
        assert v5.profile_size == 0

    def test_true_color_has_no_table(self):
        image = decode_bmp(build_bmp(bit_count=24))
        assert image.color_table_entries == 0
        assert image.dib_header.compression_name == "BI_RGB"

    def test_colors_used(self):
        assert decode_bmp(build_bmp(bit_count=8, colors_used=16)).color_table_entries == 16

    def test_bitfields_masks(self):
        image = decode_bmp(build_bmp(bit_count=16, compression=BI_BITFIELDS))
        assert image.dib_header.compression_name == "BI_BITFIELDS"
        assert image.color_table_entries == 0

    def test_top_down(self):
        assert decode_bmp(build_bmp(height=-2)).dib_header.top_down

    def test_bad_magic(self):
        data = bytearray(build_bmp())
        data[0:2] = b"MB"
        with pytest.raises(InvalidMagic):
            decode_bmp(data)

    def test_unknown_dib_size(self):
        with pytest.raises(UnsupportedBlock) as exc_info:
            decode_bmp(build_bmp(dib_size=64))
        assert exc_info.value.tag == 64
        assert exc_info.value.offset == 14

    def test_truncated_color_table(self):
        with pytest.raises(BoundsError):
            decode_bmp(build_bmp()[: 14 + 40 + 100])


class TestGif:
    """Tests for decode_gif."""

    def test_screen(self):
        image = decode_gif(build_gif())
        assert image.version == "89a"
        screen = image.screen
        assert (screen.width, screen.height) == (2, 2)
        assert screen.has_global_color_table
        assert screen.global_color_table_entries == 4
        assert screen.color_resolution == 2

    def test_blocks(self):
        blocks = decode_gif(build_gif()).blocks
        assert [type(b) for b in blocks] == [
            Extension,
            GraphicControlExtension,
            Extension,
            ImageDescriptor,
        ]
        assert blocks[0].offset == GIF_FIRST_BLOCK
        assert blocks[0].label == APPLICATION_LABEL
        assert blocks[0].data == [b"NETSCAPE2.0", b"\x01\x00\x00"]

    def test_graphic_control(self):
        gce = decode_gif(build_gif()).blocks[1]
        assert gce.delay_time == 10
        assert gce.transparent_color_index == 3
        assert gce.disposal_method == 1
        assert gce.has_transparency

    def test_comment_and_image(self):
        image = decode_gif(build_gif(comment=b"x" * 300))
        assert image.comments == [b"x" * 300]
        (frame,) = image.images
        assert (frame.width, frame.height) == (2, 2)
        assert frame.lzw_minimum_code_size == 2
        assert frame.data_size == 2
        assert frame.local_color_table_entries == 0
        assert not frame.interlaced

    def test_gif87a(self):
        image = decode_gif(build_gif(version=b"87a"))
        assert image.version == "87a"
        assert [type(b) for b in image.blocks] == [ImageDescriptor]

    def test_bad_magic(self):
        with pytest.raises(InvalidMagic):
            decode_gif(build_gif(version=b"90a"))

    def test_unknown_extension_label(self):
        data = bytearray(build_gif())
        data[GIF_FIRST_BLOCK + 1] = 0x02
        with pytest.raises(UnsupportedBlock) as exc_info:
            decode_gif(data)
        assert exc_info.value.tag == 0x02
        assert exc_info.value.offset == GIF_FIRST_BLOCK + 1

    def test_unknown_introducer(self):
        data = bytearray(build_gif())
        data[GIF_FIRST_BLOCK] = 0x42
        with pytest.raises(UnsupportedBlock):
            decode_gif(data)

    def test_bad_graphic_control_size(self):
        data = bytearray(build_gif())
        gce = decode_gif(data).blocks[1].offset
        data[gce + 2] = 5
        with pytest.raises(InvalidHeaderField, match="Graphic control block size"):
            decode_gif(data)

    def test_missing_trailer(self):
        with pytest.raises(BoundsError):
            decode_gif(build_gif()[:-1])

    def test_block_limit(self):
        with pytest.raises(LimitExceeded):
            decode_gif(build_gif(), DecodeLimits(max_record_count=2))


def png_with(*chunks: bytes, color_type: int = 3):
    """Decode the sample PNG with extra chunks ahead of IDAT."""
    return decode_png(build_png(color_type=color_type, extra=chunks))


class TestPngAncillaryChunks:
    """Tests for the typed decoding of ancillary chunk bodies."""

    def test_timestamp(self):
        image = png_with(png_chunk(b"tIME", struct.pack(">HBBBBB", 2024, 2, 29, 13, 5, 9)))
        stamp = image.find("tIME")
        assert stamp == Timestamp(2024, 2, 29, 13, 5, 9)
        assert stamp.isoformat() == "2024-02-29T13:05:09"

    def test_physical_dimensions(self):
        image = png_with(png_chunk(b"pHYs", struct.pack(">IIB", 2835, 2835, 1)))
        phys = image.find("pHYs")
        assert (phys.pixels_per_unit_x, phys.pixels_per_unit_y) == (2835, 2835)
        assert phys.unit_name == "meter"

    def test_gamma(self):
        gamma = png_with(png_chunk(b"gAMA", struct.pack(">I", 45455))).find("gAMA")
        assert gamma.gamma == 45455
        assert gamma.value == pytest.approx(0.45455)

    def test_chromaticities(self):
        values = (31270, 32900, 64000, 33000, 30000, 60000, 15000, 6000)
        image = png_with(png_chunk(b"cHRM", struct.pack(">8I", *values)))
        assert image.find("cHRM") == Chromaticities(*values)

    def test_standard_rgb(self):
        srgb = png_with(png_chunk(b"sRGB", b"\x00")).find("sRGB")
        assert srgb.intent_name == "perceptual"

    def test_icc_profile_kept_compressed(self):
        profile = zlib.compress(b"icc profile bytes")
        image = png_with(png_chunk(b"iCCP", b"Display\x00\x00" + profile))
        assert image.find("iCCP") == IccProfile("Display", 0, profile)

    @pytest.mark.parametrize(
        "color_type,body,field,expected",
        [
            (0, struct.pack(">H", 7), "gray", 7),
            (2, struct.pack(">3H", 1, 2, 3), "rgb", (1, 2, 3)),
            (3, b"\x00\x80", "palette_alpha", [0, 128]),
        ],
    )
    def test_transparency(self, color_type: int, body: bytes, field: str, expected):
        """The tRNS layout follows the IHDR color type."""
        trns = png_with(png_chunk(b"tRNS", body), color_type=color_type).find("tRNS")
        assert getattr(trns, field) == expected

    def test_transparency_longer_than_palette(self):
        with pytest.raises(InvalidHeaderField, match="alpha entries"):
            png_with(png_chunk(b"tRNS", b"\x00" * 4))

    def test_transparency_with_alpha_channel(self):
        with pytest.raises(InvalidHeaderField, match="not allowed"):
            png_with(png_chunk(b"tRNS", struct.pack(">H", 0)), color_type=6)

    def test_background(self):
        assert png_with(png_chunk(b"bKGD", b"\x02")).find("bKGD").palette_index == 2
        rgb = png_with(png_chunk(b"bKGD", struct.pack(">3H", 255, 255, 255)), color_type=2)
        assert rgb.find("bKGD").rgb == (255, 255, 255)

    def test_significant_bits(self):
        sbit = png_with(png_chunk(b"sBIT", b"\x05\x06\x05")).find("sBIT")
        assert sbit.bits == (5, 6, 5)

    def test_histogram(self):
        hist = png_with(png_chunk(b"hIST", struct.pack(">3H", 10, 0, 4))).find("hIST")
        assert hist.frequencies == [10, 0, 4]

    def test_histogram_must_match_palette(self):
        with pytest.raises(InvalidHeaderField, match="hIST"):
            png_with(png_chunk(b"hIST", struct.pack(">2H", 10, 0)))

    def test_compressed_text(self):
        body = b"Comment\x00\x00" + zlib.compress(b"squeezed")
        image = png_with(png_chunk(b"zTXt", body))
        assert image.find("zTXt") == Text("Comment", "squeezed", compressed=True)
        assert image.text == [("Title", "binscope"), ("Comment", "squeezed")]

    def test_compressed_text_unknown_method(self):
        body = b"Comment\x00\x01" + zlib.compress(b"squeezed")
        with pytest.raises(InvalidHeaderField, match="compression method"):
            png_with(png_chunk(b"zTXt", body))

    def test_compressed_text_corrupt(self):
        with pytest.raises(InvalidHeaderField, match="inflate"):
            png_with(png_chunk(b"zTXt", b"Comment\x00\x00not a zlib stream"))

    def test_compressed_text_truncated(self):
        stream = zlib.compress(b"squeezed" * 10)
        with pytest.raises(InvalidHeaderField):
            png_with(png_chunk(b"zTXt", b"Comment\x00\x00" + stream[:-6]))

    def test_international_text(self):
        body = b"Title\x00\x00\x00fr\x00Titre\x00" + "Été".encode("utf-8")
        image = png_with(png_chunk(b"iTXt", body))
        assert image.find("iTXt") == Text(
            "Title", "Été", compressed=False, language="fr", translated_keyword="Titre"
        )

    def test_international_text_compressed(self):
        body = b"Title\x00\x01\x00ja\x00\x00" + zlib.compress("日本".encode("utf-8"))
        itxt = png_with(png_chunk(b"iTXt", body)).find("iTXt")
        assert itxt.text == "日本"
        assert itxt.compressed

    def test_international_text_bad_utf8(self):
        with pytest.raises(Utf8Error):
            png_with(png_chunk(b"iTXt", b"Title\x00\x00\x00\x00\x00\xff"))

    def test_suggested_palette(self):
        eight = b"web\x00\x08" + struct.pack(">4BH", 1, 2, 3, 255, 10)
        sixteen = b"deep\x00\x10" + struct.pack(">5H", 256, 512, 768, 65535, 3)
        image = png_with(png_chunk(b"sPLT", eight), png_chunk(b"sPLT", sixteen))
        first, second = (c.data for c in image.chunks_of("sPLT"))
        assert (first.name, first.sample_depth) == ("web", 8)
        assert first.entries == [SuggestedPaletteEntry(1, 2, 3, 255, 10)]
        assert second.entries == [SuggestedPaletteEntry(256, 512, 768, 65535, 3)]

    def test_suggested_palette_bad_depth(self):
        with pytest.raises(InvalidHeaderField, match="sample depth"):
            png_with(png_chunk(b"sPLT", b"web\x00\x04" + bytes(6)))

    def test_suggested_palette_ragged_entries(self):
        with pytest.raises(InvalidHeaderField, match="multiple"):
            png_with(png_chunk(b"sPLT", b"web\x00\x08" + bytes(7)))

    def test_image_offset(self):
        image = png_with(png_chunk(b"oFFs", struct.pack(">iiB", -5, 7, 0)))
        offs = image.find("oFFs")
        assert offs == ImageOffset(-5, 7, 0)
        assert offs.unit_name == "pixel"

    def test_pixel_calibration(self):
        body = b"depth\x00" + struct.pack(">iiBB", 0, 255, 0, 2) + b"m\x000\x001.5"
        pcal = png_with(png_chunk(b"pCAL", body)).find("pCAL")
        assert (pcal.name, pcal.original_zero, pcal.original_max) == ("depth", 0, 255)
        assert pcal.unit == "m"
        assert pcal.parameters == ["0", "1.5"]

    def test_pixel_calibration_parameter_count(self):
        body = b"depth\x00" + struct.pack(">iiBB", 0, 255, 0, 3) + b"m\x000\x001.5"
        with pytest.raises(InvalidHeaderField, match="3 parameters"):
            png_with(png_chunk(b"pCAL", body))

    def test_physical_scale(self):
        image = png_with(png_chunk(b"sCAL", b"\x01" + b"0.1\x000.2"))
        assert image.find("sCAL") == PhysicalScale(1, "0.1", "0.2")
        assert image.find("sCAL").unit_name == "meter"

    def test_gif_extension_chunks(self):
        image = png_with(
            png_chunk(b"gIFg", struct.pack(">BBH", 1, 0, 10)),
            png_chunk(b"gIFx", b"NETSCAPE" + b"2.0" + b"\x01\x00"),
            png_chunk(b"sTER", b"\x00"),
        )
        assert image.find("gIFg") == GifGraphicControl(1, 0, 10)
        assert image.find("gIFx") == GifApplication(b"NETSCAPE", b"2.0", b"\x01\x00")
        assert image.find("sTER") == StereoMode(0)

    def test_fixed_size_chunk_wrong_length(self):
        with pytest.raises(InvalidHeaderField, match="expected 7"):
            png_with(png_chunk(b"tIME", bytes(6)))

    def test_keyword_too_long(self):
        with pytest.raises(InvalidHeaderField, match="keyword"):
            png_with(png_chunk(b"tEXt", b"k" * 80 + b"\x00text"))

    def test_empty_keyword(self):
        with pytest.raises(InvalidHeaderField, match="keyword"):
            png_with(png_chunk(b"tEXt", b"\x00text"))

    def test_unregistered_chunk_is_recorded_only(self):
        image = png_with(png_chunk(b"prVt", b"opaque"))
        (private,) = image.chunks_of("prVt")
        assert private.data is None
        assert private.length == len(b"opaque")
        assert image.chunks_of("IDAT")[0].data is None

    def test_header_and_palette_data(self):
        image = decode_png(build_png())
        assert image.chunks[0].data is image.header
        assert image.find("PLTE").entries == [(0, 0, 0), (255, 255, 255), (255, 0, 0)]
