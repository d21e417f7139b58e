"""
Prediction schema tests
"""

import pytest
from pydantic import ValidationError

from dream_studio.schemas.prediction import (
    DEFAULT_NEGATIVE_PROMPT,
    GeneratedImage,
    JobResult,
    JobStatus,
    PhotoMakerInput,
    Prediction,
    PredictionUpdate,
    ProgressEvent,
)


class TestJobStatus:
    def test_unknown_value_maps_to_unknown(self):
        assert JobStatus("queued") is JobStatus.UNKNOWN

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (JobStatus.STARTING, False),
            (JobStatus.PROCESSING, False),
            (JobStatus.SUCCEEDED, True),
            (JobStatus.FAILED, True),
            (JobStatus.CANCELED, True),
            (JobStatus.UNKNOWN, False),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert status.is_terminal is terminal


class TestPhotoMakerInput:
    def test_payload_uses_defaults_and_omits_unset_fields(self):
        request = PhotoMakerInput(input_image="https://x/in.jpg", prompt="a man img")
        payload = request.to_payload()

        assert payload == {
            "input_image": "https://x/in.jpg",
            "prompt": "a man img",
            "num_steps": 50,
            "style_name": "Photographic (Default)",
            "negative_prompt": DEFAULT_NEGATIVE_PROMPT,
            "num_outputs": 1,
            "style_strength_ratio": 20,
            "guidance_scale": 5,
            "disable_safety_checker": False,
        }

    def test_seed_is_sent_when_set(self):
        request = PhotoMakerInput(input_image="https://x/in.jpg", prompt="p img", seed=42)
        assert request.to_payload()["seed"] == 42

    def test_is_immutable(self):
        request = PhotoMakerInput(input_image="https://x/in.jpg", prompt="p img")
        with pytest.raises(ValidationError):
            request.prompt = "other"

    def test_rejects_empty_prompt(self):
        with pytest.raises(ValidationError):
            PhotoMakerInput(input_image="https://x/in.jpg", prompt="")

    def test_rejects_out_of_range_outputs(self):
        with pytest.raises(ValidationError):
            PhotoMakerInput(input_image="https://x/in.jpg", prompt="p img", num_outputs=5)


class TestPrediction:
    def test_string_output_is_normalized_to_list(self):
        prediction = Prediction.model_validate(
            {"id": "p", "status": "succeeded", "output": "https://x/0.png"}
        )
        assert prediction.output == ["https://x/0.png"]

    def test_structured_error_is_stringified(self):
        prediction = Prediction.model_validate(
            {"id": "p", "status": "failed", "error": {"detail": "bad input"}}
        )
        assert "bad input" in prediction.error

    def test_to_update_and_handle(self):
        prediction = Prediction.model_validate(
            {"id": "p", "status": "processing", "urls": {"get": "https://api/p"}}
        )
        assert prediction.to_update() == PredictionUpdate(status=JobStatus.PROCESSING)
        assert prediction.to_handle().urls == {"get": "https://api/p"}

    def test_update_accepts_unrecognized_status(self):
        assert PredictionUpdate(status="warming").status is JobStatus.UNKNOWN


class TestResultModels:
    def test_progress_event_bounds(self):
        with pytest.raises(ValidationError):
            ProgressEvent(progress=1.5)

    def test_job_result_requires_an_image(self):
        with pytest.raises(ValidationError):
            JobResult(job_id="p", images=[])

    def test_generated_image_repr_hides_bytes(self):
        image = GeneratedImage(reference="https://x/0.png", data=b"\x89PNG" * 100)
        assert "\\x89PNG" not in repr(image)
