"""
Generate Command Module

Image generation / cancel subcommands
"""

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from dream_studio.clients.exceptions import APIError
from dream_studio.clients.replicate_client import ReplicateAsyncClient
from dream_studio.config.settings import Settings, get_settings
from dream_studio.schemas.prediction import JobResult, PhotoMakerInput
from dream_studio.services.image_loader import HttpImageLoader
from dream_studio.services.prediction_controller import (
    PredictionProgressController,
    PredictionRun,
)
from dream_studio.services.prediction_service import ReplicatePredictionService
from dream_studio.shared.exceptions import (
    ConfigurationError,
    DreamStudioError,
    JobCanceledError,
)
from dream_studio.shared.utils.image_format import extension_for

console = Console()

EXIT_INTERRUPTED = 130


def run_generate(
    prompt: str,
    image_url: str,
    output_dir: str,
    num_outputs: int = 1,
    style: str = "Photographic (Default)",
    steps: int = 50,
    seed: Optional[int] = None,
) -> None:
    """
    Execute one image generation job

    Args:
        prompt: Prompt text
        image_url: Source image URL
        output_dir: Directory the generated images are written to
        num_outputs: Number of images to generate
        style: PhotoMaker style name
        steps: Sampling steps
        seed: Random seed (None = server default)
    """
    try:
        settings = _require_settings()
        request = PhotoMakerInput(
            input_image=image_url,
            prompt=prompt,
            num_steps=steps,
            style_name=style,
            num_outputs=num_outputs,
            seed=seed,
        )
        result = asyncio.run(_generate(request, settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Generation cancelled by user.[/yellow]")
        raise SystemExit(EXIT_INTERRUPTED)
    except JobCanceledError as e:
        console.print(f"[yellow]Prediction cancelled:[/yellow] {e}")
        raise SystemExit(EXIT_INTERRUPTED)
    except (DreamStudioError, ValueError) as e:
        console.print(f"[bold red]Generation Error:[/bold red] {e}")
        logger.error(f"CLI generation error: {e}")
        raise SystemExit(1)

    try:
        paths = save_images(result, Path(output_dir))
    except OSError as e:
        console.print(f"[bold red]Save Error:[/bold red] {e}")
        logger.error(f"CLI save error: {output_dir}: {e}")
        raise SystemExit(1)

    console.print("[bold green]Generation completed![/bold green]")
    _display_result(result, paths)


def run_cancel(prediction_id: str) -> None:
    """
    Request cancellation of a prediction

    Args:
        prediction_id: Prediction ID
    """
    try:
        settings = _require_settings()
        asyncio.run(_cancel(prediction_id, settings))
    except (ConfigurationError, APIError) as e:
        console.print(f"[bold red]Cancel Error:[/bold red] {e}")
        raise SystemExit(1)
    except ValidationError as e:
        console.print(f"[bold red]Cancel Error:[/bold red] Unexpected response: {e}")
        raise SystemExit(1)

    console.print(f"[bold green]Cancel requested:[/bold green] {prediction_id}")


def save_images(result: JobResult, output_dir: Path) -> list[Path]:
    """Write generated images to output_dir and return their paths"""
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for index, image in enumerate(result.images, start=1):
        path = output_dir / f"{result.job_id}_{index}{extension_for(image.content_type)}"
        path.write_bytes(image.data)
        paths.append(path)
    return paths


def _require_settings() -> Settings:
    settings = get_settings()
    if not settings.replicate_api_token:
        raise ConfigurationError("REPLICATE_API_TOKEN is not set")
    return settings


def _build_client(settings: Settings) -> ReplicateAsyncClient:
    return ReplicateAsyncClient(
        api_token=settings.replicate_api_token,
        base_url=settings.replicate_base_url,
        timeout=settings.api_timeout,
    )


async def _generate(request: PhotoMakerInput, settings: Settings) -> JobResult:
    async with _build_client(settings) as client, HttpImageLoader(settings.api_timeout) as loader:
        service = ReplicatePredictionService(
            client,
            model_version=settings.replicate_model_version,
            poll_interval=settings.poll_interval_seconds,
        )
        async with PredictionProgressController(
            service,
            loader,
            estimated_total_seconds=settings.estimated_total_seconds,
            tick_interval=settings.tick_interval_seconds,
            deadline_seconds=settings.deadline_seconds,
        ) as controller:
            run = await controller.start(request)
            try:
                await _render_progress(run)
            except asyncio.CancelledError:
                await controller.cancel()
                raise
            return await run.result()


async def _cancel(prediction_id: str, settings: Settings) -> None:
    async with _build_client(settings) as client:
        await client.cancel_prediction(prediction_id)


async def _render_progress(run: PredictionRun) -> None:
    """Show a live progress bar fed from the run's event stream"""
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}[/bold blue]"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("submitting", total=1.0)
        async for event in run.events():
            description = event.status.value if event.status else "submitting"
            progress.update(task_id, completed=event.progress, description=description)


def _display_result(result: JobResult, paths: list[Path]) -> None:
    table = Table(title=f"Prediction {result.job_id}", show_header=True)
    table.add_column("File", style="bold cyan")
    table.add_column("Source", style="white")
    table.add_column("Size", justify="right")

    for path, image in zip(paths, result.images):
        table.add_row(str(path), image.reference, f"{len(image.data):,} B")

    console.print(table)

    for failure in result.failures:
        console.print(f"[yellow]Skipped:[/yellow] {failure.reference} ({failure.reason})")
