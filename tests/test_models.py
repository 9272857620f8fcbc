"""Tests for scene descriptors, clips, artifacts and jobs."""

import pytest

from reelcompose.errors import ManifestError
from reelcompose.models import (
    Artifact,
    Clip,
    EncodingJob,
    GradientSpec,
    IconChip,
    JobState,
    LogoSpec,
    SceneDescriptor,
    SummaryContent,
    TextBlock,
)


def scene(ms=2000, **kwargs):
    return SceneDescriptor(background="photo.png", duration_ms=ms, **kwargs)


class TestSceneDescriptor:
    def test_duration_seconds(self):
        assert scene(2500).duration == 2.5

    def test_asset_sources(self):
        s = scene(logo=LogoSpec("logo.png"), footer_mark="mark.png")
        assert s.asset_sources() == ["photo.png", "logo.png", "mark.png"]

    def test_zero_duration_rejected(self):
        with pytest.raises(ManifestError, match="duration"):
            scene(0)

    def test_summary_needs_content(self):
        with pytest.raises(ManifestError, match="summary content"):
            SceneDescriptor(kind="summary")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ManifestError, match="scene kind"):
            SceneDescriptor(kind="video")

    def test_chips_list_becomes_tuple(self):
        s = scene(chips=[IconChip("hab", "3")])
        assert isinstance(s.chips, tuple)
        hash(s)

    def test_equal_descriptors_are_equal(self):
        assert scene() == scene()


class TestValueValidation:
    def test_gradient_intensity_range(self):
        with pytest.raises(ManifestError, match="intensity"):
            GradientSpec("both", 120)

    def test_gradient_max_alpha(self):
        assert GradientSpec("both", 100).max_alpha == pytest.approx(0.7)
        assert GradientSpec("both", 50).max_alpha == pytest.approx(0.35)

    def test_logo_position(self):
        with pytest.raises(ManifestError, match="logo position"):
            LogoSpec("logo.png", position="bottom-left")

    def test_logo_opacity(self):
        with pytest.raises(ManifestError, match="opacity"):
            LogoSpec("logo.png", opacity=-1)

    def test_text_scale_positive(self):
        with pytest.raises(ManifestError):
            TextBlock(typography_scale=0)

    def test_summary_background(self):
        with pytest.raises(ManifestError, match="summary background"):
            SummaryContent(background_style="video")

    def test_chip_label(self):
        assert IconChip("hab", "3").label == "3 hab"


class TestClip:
    def test_probe_file(self, make_video):
        clip = Clip(str(make_video(size=(160, 90), duration=1.0, fps=10)))
        info = clip.probe()
        assert (info.width, info.height) == (160, 90)
        assert info.duration == pytest.approx(1.0, abs=0.2)
        assert clip.probe() is info

    def test_probe_bytes(self, make_video):
        data = make_video(size=(90, 160)).read_bytes()
        info = Clip(data).probe()
        assert (info.width, info.height) == (90, 160)

    def test_read_bytes_from_path(self, make_video):
        path = make_video()
        assert Clip(path).read_bytes() == path.read_bytes()


class TestArtifact:
    def test_extension_from_mime(self):
        assert Artifact(b"x", "video/webm").extension == "webm"
        assert Artifact(b"x", "application/x-unknown").extension == "bin"

    def test_write_creates_parents(self, tmp_path):
        out = Artifact(b"abc", "video/mp4").write(tmp_path / "a" / "b.mp4")
        assert out.read_bytes() == b"abc"


class TestEncodingJob:
    def test_needs_exactly_one_input_kind(self):
        with pytest.raises(ManifestError):
            EncodingJob()
        with pytest.raises(ManifestError):
            EncodingJob(scenes=[scene()], clips=[Clip(b"x")])

    def test_odd_resolution_rejected(self):
        with pytest.raises(ManifestError, match="even"):
            EncodingJob(scenes=[scene()], width=107, height=192)

    def test_unknown_format_rejected(self):
        with pytest.raises(ManifestError, match="format"):
            EncodingJob(scenes=[scene()], format="avi")

    def test_total_duration_from_scenes(self):
        job = EncodingJob(scenes=[scene(2000)] * 5 + [scene(2500)])
        assert job.total_duration == pytest.approx(12.5)

    def test_mime_type(self):
        assert EncodingJob(scenes=[scene()], format="gif").mime_type == "image/gif"

    def test_lifecycle(self):
        job = EncodingJob(scenes=[scene()])
        assert job.state is JobState.CREATED
        job.start()
        assert job.state is JobState.RUNNING
        artifact = Artifact(b"x", "video/mp4")
        assert job.succeed(artifact) is artifact
        assert job.state is JobState.SUCCEEDED

    def test_cannot_start_twice(self):
        job = EncodingJob(scenes=[scene()])
        job.start()
        with pytest.raises(RuntimeError):
            job.start()

    def test_report_forwards_progress(self):
        calls = []
        job = EncodingJob(scenes=[scene()], progress=lambda p, l: calls.append((p, l)))
        job.report(42.0, "Rendering")
        assert calls == [(42.0, "Rendering")]
