"""Tests for handdepth.vision — transforms, resampler, tensor packer."""

from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from handdepth.types import TensorLayout, UnsupportedModelError
from handdepth.vision.resampler import AffineResampler, Interpolation, ResizeOptions
from handdepth.vision.tensor_packer import (
    PackConfig,
    PackMode,
    TensorPacker,
    infer_layout,
    pack,
    to_model_layout,
)
from handdepth.vision.transform import (
    AspectMode,
    UVRect,
    invert,
    multiply_point3x4,
    rotation_z,
    texture_uv_rect,
    translate,
    trs,
    vertex_transform,
)


def _gradient(height: int, width: int) -> np.ndarray:
    """RGB image whose value is 10 * row + 2 * col on every channel."""
    rows, cols = np.mgrid[0:height, 0:width]
    plane = (10 * rows + 2 * cols).astype(np.uint8)
    return np.repeat(plane[:, :, None], 3, axis=2)


class TestTransform:
    """Tests for the 4x4 transform helpers."""

    def test_trs_order(self) -> None:
        m = trs((1.0, 2.0, 0.0), 90.0, (2.0, 3.0, 1.0))
        # Scale first, then rotate, then translate
        p = multiply_point3x4(m, np.array([1.0, 0.0, 0.0]))
        np.testing.assert_allclose(p, [1.0, 4.0, 0.0], atol=1e-12)

    def test_rotation_is_counter_clockwise(self) -> None:
        p = multiply_point3x4(rotation_z(90.0), np.array([1.0, 0.0, 0.0]))
        np.testing.assert_allclose(p, [0.0, 1.0, 0.0], atol=1e-12)

    def test_invert_round_trip(self) -> None:
        m = translate(0.3, -0.2) @ trs((0.1, 0.2, 0.0), 33.0, (0.5, -2.0, 1.0))
        np.testing.assert_allclose(invert(m) @ m, np.eye(4), atol=1e-12)

    def test_invert_singular_raises(self) -> None:
        m = trs((0.0, 0.0, 0.0), 0.0, (0.0, 1.0, 1.0))
        with pytest.raises(ValueError, match="singular"):
            invert(m)

    def test_vertex_transform_flip_about_center(self) -> None:
        p = multiply_point3x4(vertex_transform(flip_x=True), np.array([0.25, 0.25, 0.0]))
        np.testing.assert_allclose(p, [0.75, 0.25, 0.0], atol=1e-12)

    def test_uv_rect_fill_is_full(self) -> None:
        assert texture_uv_rect(640, 480, 224, 224, AspectMode.FILL) == UVRect()

    def test_uv_rect_fit_letterboxes_wide_source(self) -> None:
        rect = texture_uv_rect(4, 2, 4, 4, AspectMode.FIT)
        assert rect == UVRect(0.0, -0.5, 1.0, 2.0)

    def test_uv_rect_fit_pillarboxes_tall_source(self) -> None:
        rect = texture_uv_rect(2, 4, 4, 4, AspectMode.FIT)
        assert rect == UVRect(-0.5, 0.0, 2.0, 1.0)

    def test_uv_rect_crop_wide_source(self) -> None:
        rect = texture_uv_rect(8, 4, 4, 4, AspectMode.CROP)
        assert rect == UVRect(0.25, 0.0, 0.5, 1.0)

    def test_uv_rect_crop_tall_source(self) -> None:
        rect = texture_uv_rect(4, 8, 4, 4, AspectMode.CROP)
        assert rect == UVRect(0.0, 0.25, 1.0, 0.5)


class TestAffineResampler:
    """Tests for AffineResampler."""

    def test_identity_copies(self, dummy_rgb_frame: np.ndarray) -> None:
        out = AffineResampler().resize(dummy_rgb_frame, 640, 480)
        np.testing.assert_array_equal(out, dummy_rgb_frame)

    def test_bilinear_downscale_averages_blocks(self) -> None:
        src = _gradient(4, 4)
        out = AffineResampler(Interpolation.BILINEAR).resize(src, 2, 2)

        assert out.shape == (2, 2, 3)
        # Pixel (0, 0) samples the centre of the top-left 2x2 block: (0 + 2 + 10 + 12) / 4
        assert out[0, 0, 0] == 6
        expected = np.array([[6, 10], [26, 30]], dtype=np.uint8)
        np.testing.assert_array_equal(out[:, :, 0], expected)

    def test_nearest_upscale_repeats(self) -> None:
        src = _gradient(2, 2)
        out = AffineResampler(Interpolation.NEAREST).resize(src, 4, 4)
        np.testing.assert_array_equal(out, np.repeat(np.repeat(src, 2, axis=0), 2, axis=1))

    def test_source_not_mutated(self, dummy_rgb_frame: np.ndarray) -> None:
        before = dummy_rgb_frame.copy()
        AffineResampler().resize_with_options(
            dummy_rgb_frame, ResizeOptions(100, 50, rotation_deg=30, flip_x=True)
        )
        np.testing.assert_array_equal(dummy_rgb_frame, before)

    def test_flip_x(self) -> None:
        src = _gradient(4, 4)
        out, _ = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, flip_x=True, interpolation=Interpolation.NEAREST)
        )
        np.testing.assert_array_equal(out, src[:, ::-1])

    def test_flip_y(self) -> None:
        src = _gradient(4, 4)
        out, _ = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, flip_y=True, interpolation=Interpolation.NEAREST)
        )
        np.testing.assert_array_equal(out, src[::-1])

    def test_rotate_180_equals_both_flips(self) -> None:
        src = _gradient(4, 4)
        out, _ = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, rotation_deg=180, interpolation=Interpolation.NEAREST)
        )
        np.testing.assert_array_equal(out, src[::-1, ::-1])

    def test_rotate_90(self) -> None:
        src = _gradient(4, 4)
        out, _ = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, rotation_deg=90, interpolation=Interpolation.NEAREST)
        )
        # Rows grow downward, so +90 degrees turns the image clockwise on screen
        np.testing.assert_array_equal(out, np.rot90(src, k=-1))

    def test_fit_pads_with_zeros(self) -> None:
        src = np.full((2, 4, 3), 200, dtype=np.uint8)
        out, used = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, aspect_mode=AspectMode.FIT)
        )
        assert used.uv_rect == UVRect(0.0, -0.5, 1.0, 2.0)
        assert np.all(out[0] == 0)
        assert np.all(out[3] == 0)
        assert np.all(out[1:3] == 200)

    def test_crop_keeps_center(self) -> None:
        src = np.zeros((4, 8, 3), dtype=np.uint8)
        src[:, 2:6] = 100
        out, _ = AffineResampler().resize_with_options(
            src, ResizeOptions(4, 4, aspect_mode=AspectMode.CROP)
        )
        assert np.all(out == 100)

    def test_fill_stretches(self) -> None:
        src = np.zeros((4, 8, 3), dtype=np.uint8)
        src[:, 4:] = 100
        out, _ = AffineResampler(Interpolation.NEAREST).resize_with_options(
            src, ResizeOptions(4, 4, aspect_mode=AspectMode.FILL)
        )
        assert np.all(out[:, :2] == 0)
        assert np.all(out[:, 2:] == 100)

    def test_rgba_and_gray_sources(self) -> None:
        rgba = np.full((10, 10, 4), 7, dtype=np.uint8)
        gray = np.full((10, 10), 7, dtype=np.uint8)
        assert AffineResampler().resize(rgba, 5, 3).shape == (3, 5, 4)
        assert AffineResampler().resize(gray, 5, 3).shape == (3, 5)

    def test_buffer_reused_while_size_unchanged(self, dummy_rgb_frame: np.ndarray) -> None:
        resampler = AffineResampler()
        first = resampler.resize(dummy_rgb_frame, 32, 16)
        second = resampler.resize(dummy_rgb_frame[::2], 32, 16)
        assert first is second
        third = resampler.resize(dummy_rgb_frame, 16, 16)
        assert third is not first
        assert third.shape == (16, 16, 3)

    @pytest.mark.parametrize(("width", "height"), [(0, 10), (10, 0), (-1, 5)])
    def test_non_positive_size_raises(self, width: int, height: int) -> None:
        src = np.zeros((4, 4, 3), dtype=np.uint8)
        with pytest.raises(ValueError, match="positive"):
            AffineResampler().resize(src, width, height)

    def test_options_validate_size(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            ResizeOptions(0, 224)

    def test_none_source_raises(self) -> None:
        with pytest.raises(ValueError, match="None"):
            AffineResampler().resize(None, 4, 4)  # type: ignore[arg-type]

    def test_empty_source_raises(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            AffineResampler().resize(np.zeros((0, 0, 3), dtype=np.uint8), 4, 4)

    def test_bad_transform_shape_raises(self) -> None:
        with pytest.raises(ValueError, match="4x4"):
            AffineResampler().resize(np.zeros((4, 4, 3), dtype=np.uint8), 2, 2, np.eye(3))

    @given(st.integers(1, 48), st.integers(1, 48))
    @settings(max_examples=30, deadline=None)
    def test_output_size_exact(self, width: int, height: int) -> None:
        src = np.random.default_rng(0).integers(0, 256, (37, 53, 3), dtype=np.uint8)
        out = AffineResampler().resize(src, width, height)
        assert out.shape == (height, width, 3)


class TestTensorPacker:
    """Tests for pack() and TensorPacker."""

    def test_unit_scale_extremes(self) -> None:
        ones = pack(np.full((4, 5, 3), 255, dtype=np.uint8), PackConfig(PackMode.UNIT_SCALE))
        zeros = pack(np.zeros((4, 5, 3), dtype=np.uint8), PackConfig(PackMode.UNIT_SCALE))
        assert ones.dtype == np.float32
        assert np.all(ones == 1.0)
        assert np.all(zeros == 0.0)

    def test_offset_scale(self) -> None:
        img = np.array([[[0, 127, 255]]], dtype=np.uint8)
        out = pack(img, PackConfig(PackMode.OFFSET_SCALE, offset=127.5, scale=1 / 127.5))
        np.testing.assert_allclose(out[0, 0], [-1.0, -0.5 / 127.5, 1.0], atol=1e-6)

    def test_signed_byte_reinterprets(self) -> None:
        img = np.array([[[0, 127, 128], [200, 255, 1]]], dtype=np.uint8)
        out = pack(img, PackConfig(PackMode.SIGNED_BYTE))
        assert out.dtype == np.int8
        np.testing.assert_array_equal(out, [[[0, 127, -128], [-56, -1, 1]]])

    def test_raw_copies_bytes(self, dummy_rgb_frame: np.ndarray) -> None:
        out = pack(dummy_rgb_frame, PackConfig(PackMode.RAW))
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out, dummy_rgb_frame)
        assert not np.shares_memory(out, dummy_rgb_frame)

    def test_row_first_indexing(self) -> None:
        img = np.zeros((3, 4, 3), dtype=np.uint8)
        img[1, 2] = (51, 102, 204)
        out = pack(img)
        np.testing.assert_allclose(out[1, 2], [0.2, 0.4, 0.8], atol=1e-6)
        assert out.sum() == pytest.approx(1.4, abs=1e-5)

    def test_alpha_dropped(self) -> None:
        out = pack(np.zeros((2, 2, 4), dtype=np.uint8))
        assert out.shape == (2, 2, 3)

    def test_invalid_image_raises(self) -> None:
        with pytest.raises(ValueError, match="image"):
            pack(np.zeros((4, 4), dtype=np.uint8))
        with pytest.raises(ValueError, match="uint8"):
            pack(np.zeros((4, 4, 3), dtype=np.float32))

    def test_out_buffer_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="does not match"):
            pack(np.zeros((4, 4, 3), dtype=np.uint8), out=np.zeros((4, 4, 3), dtype=np.int8))

    def test_packer_reuses_buffer(self) -> None:
        packer = TensorPacker(PackConfig(PackMode.UNIT_SCALE))
        a = packer.pack(np.zeros((8, 8, 3), dtype=np.uint8))
        b = packer.pack(np.full((8, 8, 3), 255, dtype=np.uint8))
        assert a is b
        assert np.all(b == 1.0)
        c = packer.pack(np.zeros((4, 8, 3), dtype=np.uint8))
        assert c is not a

    def test_pack_is_stateless(self, dummy_rgb_frame: np.ndarray) -> None:
        config = PackConfig(PackMode.OFFSET_SCALE, offset=10.0, scale=0.5)
        np.testing.assert_array_equal(pack(dummy_rgb_frame, config), pack(dummy_rgb_frame, config))

    @given(st.integers(0, 255))
    @settings(max_examples=50)
    def test_unit_scale_matches_formula(self, value: int) -> None:
        out = pack(np.full((1, 1, 3), value, dtype=np.uint8))
        assert out[0, 0, 0] == pytest.approx(value / 255.0, abs=1e-7)


class TestLayout:
    """Tests for input layout detection and conversion."""

    def test_nhwc(self) -> None:
        assert infer_layout((1, 256, 128, 3)) == (TensorLayout.NHWC, 128, 256, 3)

    def test_nchw(self) -> None:
        assert infer_layout((1, 3, 256, 128)) == (TensorLayout.NCHW, 128, 256, 3)

    def test_dynamic_batch_allowed(self) -> None:
        assert infer_layout((None, 224, 224, 3))[0] is TensorLayout.NHWC

    @pytest.mark.parametrize("shape", [(1, 63), (1, None, 224, 3), (1, 224, 224, 7)])
    def test_unsupported_shapes(self, shape: tuple) -> None:
        with pytest.raises(UnsupportedModelError):
            infer_layout(shape)

    def test_to_model_layout(self) -> None:
        tensor = np.arange(2 * 3 * 3, dtype=np.float32).reshape(2, 3, 3)
        nhwc = to_model_layout(tensor, TensorLayout.NHWC)
        nchw = to_model_layout(tensor, TensorLayout.NCHW)
        assert nhwc.shape == (1, 2, 3, 3)
        assert nchw.shape == (1, 3, 2, 3)
        assert nchw[0, 2, 1, 0] == tensor[1, 0, 2]
