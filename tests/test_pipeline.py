import io
import threading

import pytest
from PIL import Image

from cardqr.errors import PipelineTimeout, RegenerationInProgress, RenderError
from cardqr.pipeline import QRPipeline
from cardqr.publish import CURRENT_ARTIFACT_FORMAT
from cardqr.verify import decodes_to

from conftest import PAYLOAD, PUBLIC_BASE


def test_build_plain_code(pipeline):
    data = pipeline.build(PAYLOAD, {"pattern": "rounded", "size": 300})
    assert Image.open(io.BytesIO(data)).size == (300, 300)
    assert decodes_to(data, PAYLOAD)


def test_build_with_background_logo(pipeline, wide_logo):
    data = pipeline.build(PAYLOAD, {"logo": {"url": wide_logo, "position": "background", "opacity": 0.25}})
    img = Image.open(io.BytesIO(data))
    assert img.mode == "RGB"
    assert decodes_to(data, PAYLOAD)


def test_build_with_frame_grows_image(pipeline):
    data = pipeline.build(PAYLOAD, {"size": 256, "frame": {"style": "solid", "padding": 16, "width": 8}})
    assert Image.open(io.BytesIO(data)).size == (304, 304)
    assert decodes_to(data, PAYLOAD)


def test_rounded_frame_with_shadow_keeps_code_scannable(pipeline):
    data = pipeline.build(PAYLOAD, {"frame": {"style": "rounded", "shadow": True}})
    assert decodes_to(data, PAYLOAD)


def test_generate_publishes_tagged_artifact(pipeline, bucket):
    artifact, raster = pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD, {"pattern": "dots"})
    assert artifact.url.startswith(f"{PUBLIC_BASE}/user-1/jane-doe-qr-")
    assert artifact.url.endswith(".png")
    assert artifact.format_version == CURRENT_ARTIFACT_FORMAT
    assert artifact.payload == PAYLOAD
    assert bucket.read(artifact.url[len(PUBLIC_BASE) + 1:]) == raster


def test_generate_refuses_concurrent_run_for_same_card(pipeline):
    with pipeline.record_lock("card-1"):
        with pytest.raises(RegenerationInProgress):
            pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD)


def test_other_cards_are_not_blocked(pipeline):
    with pipeline.record_lock("card-1"):
        artifact, _ = pipeline.generate("card-2", "user-1", "john", PAYLOAD)
    assert artifact.url


def test_lock_is_released_after_failure(pipeline):
    with pytest.raises(RegenerationInProgress):
        with pipeline.record_lock("card-1"):
            with pipeline.record_lock("card-1"):
                pass
    artifact, _ = pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD)
    assert artifact.url


def test_cancel_before_publish_writes_nothing(pipeline, tmp_path):
    cancel = threading.Event()
    cancel.set()
    assert pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD, cancel=cancel) is None
    assert not (tmp_path / "bucket").exists()


def test_deadline_stops_before_publish(publisher, tmp_path):
    slow = QRPipeline(publisher, ecc="Q", timeout=1e-9)
    with pytest.raises(PipelineTimeout):
        slow.generate("card-1", "user-1", "jane-doe", PAYLOAD)
    assert not (tmp_path / "bucket").exists()


def test_commit_runs_inside_the_card_lock(pipeline):
    seen = []

    def commit(artifact):
        with pytest.raises(RegenerationInProgress):
            with pipeline.record_lock("card-1"):
                pass
        seen.append(artifact.url)

    artifact, _ = pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD, commit=commit)
    assert seen == [artifact.url]


def test_cancel_after_publish_skips_commit(pipeline):
    cancel = threading.Event()
    committed = []

    class CancellingPublisher:
        def publish(self, raster, owner_id, slug):
            url = pipeline_publisher.publish(raster, owner_id, slug)
            cancel.set()
            return url

    pipeline_publisher = pipeline.publisher
    pipeline.publisher = CancellingPublisher()
    result = pipeline.generate("card-1", "user-1", "jane-doe", PAYLOAD, cancel=cancel, commit=committed.append)
    assert result is None
    assert committed == []


def test_frame_failure_is_a_render_error(pipeline, monkeypatch):
    def broken_frame(image, frame, fill_color="#FFFFFF"):
        raise OSError("image file is truncated")

    monkeypatch.setattr("cardqr.pipeline.apply_frame", broken_frame)
    with pytest.raises(RenderError):
        pipeline.build(PAYLOAD, {"frame": {"style": "solid"}})
