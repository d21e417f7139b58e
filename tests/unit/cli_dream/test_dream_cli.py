"""
CLI Integration Tests

Basic tests for the dream CLI
"""

from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from dream_studio.cli_dream import app
from dream_studio.config.settings import reload_settings
from dream_studio.schemas.prediction import (
    GeneratedImage,
    ImageLoadFailure,
    JobResult,
    Prediction,
)
from dream_studio.shared.exceptions import JobCanceledError, NoImagesProducedError

runner = CliRunner()


@pytest.fixture
def token(clean_settings, monkeypatch):
    monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_clitest")
    return reload_settings()


def test_dream_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "generate" in result.stdout.lower()


def test_generate_help():
    result = runner.invoke(app, ["generate", "--help"])
    assert result.exit_code == 0
    assert "image-url" in result.stdout


def test_cancel_help():
    result = runner.invoke(app, ["cancel", "--help"])
    assert result.exit_code == 0


def test_generate_requires_token(clean_settings):
    result = runner.invoke(app, ["generate", "a man img", "-i", "https://x/in.jpg"])
    assert result.exit_code == 1
    assert "REPLICATE_API_TOKEN" in result.stdout


def test_generate_writes_images(token, tmp_path, png_bytes, jpeg_bytes):
    job_result = JobResult(
        job_id="pred-1",
        images=[
            GeneratedImage(reference="https://x/0.png", data=png_bytes, content_type="image/png"),
            GeneratedImage(reference="https://x/1.jpg", data=jpeg_bytes, content_type="image/jpeg"),
        ],
        failures=[ImageLoadFailure(reference="https://x/2.png", reason="404")],
    )
    generate = AsyncMock(return_value=job_result)

    with patch("dream_studio.cli_dream.generate._generate", generate):
        result = runner.invoke(
            app,
            ["generate", "a man img", "-i", "https://x/in.jpg", "-o", str(tmp_path), "-n", "3"],
        )

    assert result.exit_code == 0, result.stdout
    assert (tmp_path / "pred-1_1.png").read_bytes() == png_bytes
    assert (tmp_path / "pred-1_2.jpg").read_bytes() == jpeg_bytes
    request = generate.call_args.args[0]
    assert request.num_outputs == 3
    assert request.prompt == "a man img"


def test_generate_failure_exits_with_error(token, tmp_path):
    generate = AsyncMock(side_effect=NoImagesProducedError("Could not load generated images"))

    with patch("dream_studio.cli_dream.generate._generate", generate):
        result = runner.invoke(app, ["generate", "a man img", "-i", "https://x/in.jpg"])

    assert result.exit_code == 1
    assert "Could not load generated images" in result.stdout


def test_generate_cancelled_exits_130(token):
    generate = AsyncMock(side_effect=JobCanceledError("Prediction was canceled remotely"))

    with patch("dream_studio.cli_dream.generate._generate", generate):
        result = runner.invoke(app, ["generate", "a man img", "-i", "https://x/in.jpg"])

    assert result.exit_code == 130


def test_cancel_command(token):
    cancel = AsyncMock(return_value=None)

    with patch("dream_studio.cli_dream.generate._cancel", cancel):
        result = runner.invoke(app, ["cancel", "pred-42"])

    assert result.exit_code == 0
    assert cancel.call_args.args[0] == "pred-42"


def test_generate_unwritable_output_dir_exits_with_error(token, tmp_path, png_bytes):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    job_result = JobResult(
        job_id="pred-1",
        images=[GeneratedImage(reference="https://x/0.png", data=png_bytes)],
    )
    generate = AsyncMock(return_value=job_result)

    with patch("dream_studio.cli_dream.generate._generate", generate):
        result = runner.invoke(
            app, ["generate", "a man img", "-i", "https://x/in.jpg", "-o", str(blocker)]
        )

    assert result.exit_code == 1
    assert "Save Error" in result.stdout


def test_cancel_command_malformed_response_exits_with_error(token):
    with pytest.raises(ValidationError) as exc_info:
        Prediction.model_validate({"status": "canceled"})
    cancel = AsyncMock(side_effect=exc_info.value)

    with patch("dream_studio.cli_dream.generate._cancel", cancel):
        result = runner.invoke(app, ["cancel", "pred-42"])

    assert result.exit_code == 1
    assert "Cancel Error" in result.stdout
