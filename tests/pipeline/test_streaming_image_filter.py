"""Tests for the streaming image nodes.

Streamed results are compared against single-pass references: the
pixels must not depend on how many passes produced them.
"""

import threading

import numpy as np
import pytest
from scipy import ndimage

from tessera.contracts import (
    ComputeHookFailure,
    ContractViolation,
    ProcessAborted,
    SplitPolicyFailure,
)
from tessera.core import Region, coverage_is_exact
from tessera.core.data_object import ImageData
from tessera.filters import CastImageFilter, GaussianImageFilter
from tessera.pipeline import (
    StreamingCastImageFilter,
    StreamingGaussianImageFilter,
    StreamingImageFilter,
    StreamingStatisticsImageFilter,
)
from tessera.sources import ArrayImageSource
from tests.helpers.fake_image import make_fake_image

pytestmark = pytest.mark.pipeline


class TestStreamingSink:
    """Pass-through streaming of an upstream graph."""

    def test_ten_row_slabs(self, image_100):
        """Ten divisions of a 100x100 image give ten 10-row slabs."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=10)
        sink.update()

        assert source.generated_regions == [
            Region((10 * i, 0), (10, 100)) for i in range(10)
        ]
        np.testing.assert_array_equal(sink.output.to_numpy(), image_100)

    def test_each_slab_matches_single_pass(self, image_100):
        """Every slab of the streamed output equals the single-pass result."""
        streamed = StreamingCastImageFilter(
            "float32", input=ArrayImageSource(image_100), number_of_stream_divisions=10
        )
        reference = CastImageFilter("float32", input=ArrayImageSource(image_100))
        streamed.update()
        reference.update()

        out = streamed.output.to_numpy()
        ref = reference.output.to_numpy()
        for i in range(10):
            rows = slice(10 * i, 10 * i + 10)
            np.testing.assert_array_equal(out[rows], ref[rows])

    def test_defaults_from_config(self, make_config, image_100):
        """Divisions and splitter come from the config."""
        config = make_config(DIVISIONS=4, SPLITTER="TILE")
        sink = StreamingImageFilter(input=ArrayImageSource(image_100), config=config)
        assert sink.number_of_stream_divisions == 4
        assert sink.splitter.name == "tile"

    def test_keyword_overrides_config(self, make_config):
        """Explicit keywords win over the config."""
        config = make_config(DIVISIONS=4)
        sink = StreamingImageFilter(config=config, number_of_stream_divisions=7, splitter="slab")
        assert sink.number_of_stream_divisions == 7
        assert sink.splitter.name == "slab"

    def test_invalid_divisions(self):
        """Zero divisions are rejected."""
        with pytest.raises(ValueError, match=">= 1"):
            StreamingImageFilter(number_of_stream_divisions=0)

    def test_unknown_splitter(self):
        """Unknown splitter names are rejected."""
        with pytest.raises(ValueError, match="Unknown splitter"):
            StreamingImageFilter(splitter="diagonal")

    def test_tile_splitting(self, image_100):
        """Tile splitting streams six tiles that cover the image."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=6, splitter="tile")
        sink.update()

        assert len(source.generated_regions) == 6
        assert coverage_is_exact(Region.from_shape((100, 100)), source.generated_regions)
        np.testing.assert_array_equal(sink.output.to_numpy(), image_100)

    @pytest.mark.parametrize("divisions", [101, 997])
    def test_tile_prime_divisions_never_collapse_to_one_pass(self, image_100, divisions):
        """A prime too large for either axis still streams row by row."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=divisions,
                                    splitter="tile")
        sink.update()

        assert len(source.generated_regions) == 100
        assert Region.from_shape((100, 100)) not in source.generated_regions
        assert all(r.number_of_pixels == 100 for r in source.generated_regions)
        np.testing.assert_array_equal(sink.output.to_numpy(), image_100)

    def test_more_divisions_than_rows(self):
        """Divisions are capped at one row per pass."""
        image = make_fake_image((5, 8))
        source = ArrayImageSource(image)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=50)
        sink.update()
        assert len(source.generated_regions) == 5
        np.testing.assert_array_equal(sink.output.to_numpy(), image)

    def test_input_without_source(self, image_100):
        """A bare ImageData can feed a streaming node."""
        sink = StreamingImageFilter(input=ImageData(image_100), number_of_stream_divisions=3)
        sink.update()
        np.testing.assert_array_equal(sink.output.to_numpy(), image_100)

    def test_partial_request(self, image_100):
        """Only the requested sub-region is streamed."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=4)
        sink.update_output_information()
        sink.output.requested_region = Region((20, 10), (40, 30))
        sink.update()

        assert sink.output.buffered_region == Region((20, 10), (40, 30))
        np.testing.assert_array_equal(sink.output.to_numpy(), image_100[20:60, 10:40])
        assert all(r.size == (10, 30) for r in source.generated_regions)

    def test_second_update_is_identical(self, image_100):
        """A second update reuses the output unchanged."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=10)
        sink.update()
        first = sink.output.to_numpy()
        sink.update()

        assert len(source.generated_regions) == 10
        np.testing.assert_array_equal(sink.output.to_numpy(), first)

    def test_setting_divisions_reruns(self, image_100):
        """Changing the division count reruns the stream."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=10)
        sink.update()
        sink.number_of_stream_divisions = 5
        sink.update()
        assert len(source.generated_regions) == 15

    def test_output_allocated_once(self, image_100, monkeypatch):
        """The output buffer is allocated once per run."""
        source = ArrayImageSource(image_100)
        sink = StreamingImageFilter(input=source, number_of_stream_divisions=10)
        calls = []
        original = ImageData.allocate

        def counting_allocate(self, region=None):
            calls.append(self.name)
            return original(self, region)

        monkeypatch.setattr(ImageData, "allocate", counting_allocate)
        sink.update()
        assert calls == [sink.output.name]

    def test_custom_function(self, image_100):
        """A user pixel function is applied per pass."""
        def negate(block, input_region, output_region):
            return -block[output_region.slices(input_region)]

        sink = StreamingImageFilter(negate, input=ArrayImageSource(image_100),
                                    number_of_stream_divisions=3)
        sink.update()
        np.testing.assert_array_equal(sink.output.to_numpy(), -image_100)


class TestStreamingCast:
    """N=1 streaming equals the single-pass node."""

    def test_single_pass_equals_cast_filter(self, image_100):
        """One streamed pass equals the single-pass cast."""
        streamed = StreamingCastImageFilter(
            np.int16, input=ArrayImageSource(image_100), number_of_stream_divisions=1
        )
        reference = CastImageFilter(np.int16, input=ArrayImageSource(image_100))
        streamed.update()
        reference.update()

        out = streamed.output.to_numpy()
        assert out.dtype == np.int16
        np.testing.assert_array_equal(out, reference.output.to_numpy())

    def test_default_dtype_from_config(self, internal_config, image_100):
        """The cast dtype defaults to the configured one."""
        cast = StreamingCastImageFilter(input=ArrayImageSource(image_100), config=internal_config)
        cast.update()
        assert cast.output.to_numpy().dtype == np.float32


class TestStreamingGaussian:
    """Neighborhood streaming pads each piece by the kernel radius."""

    @pytest.mark.parametrize("divisions,splitter", [(1, "slab"), (7, "slab"), (9, "tile")])
    def test_matches_whole_image_scipy(self, divisions, splitter):
        """Streamed smoothing equals scipy over the whole image."""
        image = make_fake_image((60, 50), seed=3)
        smooth = StreamingGaussianImageFilter(
            sigma=1.5, input=ArrayImageSource(image),
            number_of_stream_divisions=divisions, splitter=splitter,
        )
        smooth.update()
        expected = ndimage.gaussian_filter(image, sigma=1.5, truncate=4.0, mode="reflect")
        np.testing.assert_allclose(smooth.output.to_numpy(), expected, rtol=1e-12, atol=1e-12)

    def test_matches_single_pass_filter(self):
        """Streamed smoothing equals the single-pass node."""
        image = make_fake_image((40, 40), seed=1)
        streamed = StreamingGaussianImageFilter(sigma=2.0, input=ArrayImageSource(image),
                                                number_of_stream_divisions=5)
        reference = GaussianImageFilter(sigma=2.0, input=ArrayImageSource(image))
        streamed.update()
        reference.update()
        np.testing.assert_allclose(streamed.output.to_numpy(), reference.output.to_numpy(),
                                   rtol=1e-12, atol=1e-12)

    def test_input_requests_are_padded(self):
        """Each pass asks upstream for its piece plus the radius."""
        image = make_fake_image((50, 20))
        source = ArrayImageSource(image)
        smooth = StreamingGaussianImageFilter(sigma=1.0, truncate=2.0, input=source,
                                              number_of_stream_divisions=5)
        smooth.update()

        assert smooth.radius == 2
        # inner slab rows 10..20 need rows 8..22
        assert source.generated_regions[1] == Region((8, 0), (14, 20))
        # edge slabs are cropped to the image
        assert source.generated_regions[0] == Region((0, 0), (12, 20))
        assert source.generated_regions[-1] == Region((38, 0), (12, 20))

    def test_streamed_gaussian_feeds_streamed_sink(self):
        """Two streaming nodes in a row."""
        image = make_fake_image((40, 40), seed=2)
        smooth = StreamingGaussianImageFilter(sigma=1.0, input=ArrayImageSource(image),
                                              number_of_stream_divisions=4)
        sink = StreamingImageFilter(input=smooth, number_of_stream_divisions=8)
        sink.update()
        expected = ndimage.gaussian_filter(image, sigma=1.0)
        np.testing.assert_allclose(sink.output.to_numpy(), expected, rtol=1e-12, atol=1e-12)

    def test_invalid_sigma(self):
        """A non-positive sigma is rejected."""
        with pytest.raises(ValueError, match="positive"):
            StreamingGaussianImageFilter(sigma=-1.0)


class TestStreamingStatistics:
    """Statistics accumulated over passes equal whole-image statistics."""

    def test_statistics_match_numpy(self):
        """Streamed statistics equal numpy over the whole image."""
        image = make_fake_image((64, 48), seed=5)
        stats = StreamingStatisticsImageFilter(input=ArrayImageSource(image),
                                               number_of_stream_divisions=8)
        stats.update()

        assert stats.count == image.size
        assert stats.minimum == pytest.approx(image.min())
        assert stats.maximum == pytest.approx(image.max())
        assert stats.sum == pytest.approx(image.sum())
        assert stats.mean == pytest.approx(image.mean())
        assert stats.variance == pytest.approx(image.var(ddof=1))
        assert stats.sigma == pytest.approx(image.std(ddof=1))

    def test_request_enlarged_to_largest(self):
        """A partial request still accumulates over the whole image."""
        image = make_fake_image((30, 30))
        stats = StreamingStatisticsImageFilter(input=ArrayImageSource(image),
                                               number_of_stream_divisions=3)
        stats.update_output_information()
        stats.output.requested_region = Region((0, 0), (5, 5))
        stats.update()

        assert stats.output.requested_region == Region.from_shape((30, 30))
        assert stats.count == 900

    def test_statistics_frame(self):
        """statistics_frame has one row per pass."""
        image = make_fake_image((40, 10))
        stats = StreamingStatisticsImageFilter(input=ArrayImageSource(image),
                                               number_of_stream_divisions=4)
        stats.update()
        frame = stats.statistics_frame()

        assert list(frame["pass_index"]) == [0, 1, 2, 3]
        assert frame["count"].sum() == 400
        assert frame["sum"].sum() == pytest.approx(image.sum())

    def test_statistics_before_update(self):
        """Reading statistics before an update is an error."""
        stats = StreamingStatisticsImageFilter()
        with pytest.raises(ContractViolation, match="not been updated"):
            _ = stats.mean


class TestCancellation:
    """Cooperative cancellation through a threading.Event."""

    def test_cancel_before_run(self, image_100):
        """A set cancel event aborts at pass 0."""
        event = threading.Event()
        event.set()
        sink = StreamingImageFilter(input=ArrayImageSource(image_100), cancel_event=event)
        with pytest.raises(ProcessAborted) as excinfo:
            sink.update()
        assert isinstance(excinfo.value, ComputeHookFailure)
        assert excinfo.value.pass_index == 0
        assert sink.get_current_request_number() == -1

    def test_cancel_mid_run(self, image_100):
        """Setting the cancel event mid-run stops at the next pass."""
        event = threading.Event()
        sink = StreamingImageFilter(input=ArrayImageSource(image_100),
                                    number_of_stream_divisions=10, cancel_event=event)

        def progress(pass_index, n):
            if pass_index == 2:
                event.set()

        with pytest.raises(ProcessAborted) as excinfo:
            sink.update(progress=progress)
        assert excinfo.value.pass_index == 3


class TestTilingVerification:
    """after_run rejects pieces that do not tile the request."""

    def test_gap_detected(self, image_100):
        """Pieces that leave a gap fail the tiling check."""
        sink = StreamingImageFilter(input=ArrayImageSource(image_100),
                                    number_of_stream_divisions=4)
        original = sink.kernel.compute_pass

        def skip_last(node, pass_index):
            original(node, pass_index)
            if pass_index == 3:
                sink.kernel.pieces.pop()

        sink.kernel.compute_pass = skip_last
        with pytest.raises(SplitPolicyFailure, match="gaps"):
            sink.update()
        assert sink.get_current_request_number() == -1
