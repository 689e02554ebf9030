"""CLI Application for ConceptForge."""

import asyncio
import json
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import PipelineConfig, load_credentials
from .errors import ConceptForgeError
from .logging_setup import configure_logging
from .models import (
    ConceptsRequest,
    ConceptsResult,
    FrameImageRequest,
    IdeasRequest,
    IdeasResult,
    RefineRequest,
    StageResult,
    VariationsRequest,
    VariationsResult,
)
from .pipeline import Pipeline
from .service import FalImageService, GeminiService

T = TypeVar("T")

# Setup Typer and Console
app = typer.Typer(help="ConceptForge CLI - Brief to storyboarded ad concepts")
console = Console()

BRIEF_FILE = "brief.txt"
IDEAS_FILE = "ideas.json"
VARIATIONS_FILE = "variations.json"
CONCEPTS_FILE = "concepts.json"


def _get_pipeline(
    api_key: str | None,
    fal_api_key: str | None,
    config: PipelineConfig,
) -> Pipeline:
    """Build the pipeline against the configured providers."""
    credentials = load_credentials()
    api_key = api_key or credentials.gemini_api_key
    fal_api_key = fal_api_key or credentials.fal_api_key
    if not api_key:
        console.print(
            "[bold red]Error:[/bold red] GEMINI_API_KEY not found in env or arguments.",
        )
        raise typer.Exit(code=1)
    if not fal_api_key:
        console.print(
            "[yellow]FAL_API_KEY not set, storyboard frames will have no images.[/yellow]",
        )
    return Pipeline(
        GeminiService(api_key, config.text),
        FalImageService(fal_api_key, config.image),
        config,
    )


def _run(description: str, work: Awaitable[T]) -> T:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task(description, total=None)
        try:
            return asyncio.run(work)
        except ConceptForgeError as e:
            console.print(f"[bold red]Error:[/bold red] {e.message}")
            raise typer.Exit(code=1) from e


def _warn_degraded(result: StageResult) -> None:
    if result.fallback:
        console.print(
            "[yellow]Warning: the model did not deliver, "
            "showing placeholder content.[/yellow]",
        )
    elif result.partial:
        console.print(
            "[yellow]Warning: some records were filled in with placeholders.[/yellow]",
        )


def _read(path: Path) -> str:
    if not path.exists():
        console.print(f"[bold red]Error:[/bold red] {path} not found.")
        raise typer.Exit(code=1)
    return path.read_text()


def _write(path: Path, result: StageResult) -> None:
    path.write_text(json.dumps(result.to_payload(), indent=2))


def _parse_numbers(value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        msg = f"Expected comma-separated numbers, got {value!r}"
        raise typer.BadParameter(msg) from e


def _config(frames: int, images: bool) -> PipelineConfig:
    return PipelineConfig(frame_count=frames, generate_images=images)


@app.command()
def ideas(
    brief_file: Path = typer.Argument(..., help="Text file holding the client brief"),
    output_dir: Path = typer.Option(
        Path("./run"),
        help="Directory to save the run's JSON files",
    ),
    api_key: str | None = typer.Option(
        None,
        envvar="GEMINI_API_KEY",
        help="Google Gemini API Key",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    """Stage 1: generate ten ideas from a brief."""
    configure_logging(verbose, console=console)
    brief = _read(brief_file)

    pipeline = _get_pipeline(api_key, None, PipelineConfig())
    result = _run(
        "Generating ideas...",
        pipeline.ideas.run(IdeasRequest(brief=brief)),
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / BRIEF_FILE).write_text(brief)
    _write(output_dir / IDEAS_FILE, result)

    _warn_degraded(result)
    console.print(
        Panel(
            "\n".join(
                f"[bold]{idea.id}. {idea.title}[/bold] - {idea.hook}"
                for idea in result.ideas
            ),
            title="Ideas Generated",
            border_style="green",
        ),
    )
    console.print(f"Saved to: [underline]{output_dir / IDEAS_FILE}[/underline]")


@app.command()
def variations(
    run_dir: Path = typer.Argument(..., help="Run directory created by 'ideas'"),
    select: str = typer.Option(..., help="Comma-separated idea ids, at most 3"),
    api_key: str | None = typer.Option(
        None,
        envvar="GEMINI_API_KEY",
        help="Google Gemini API Key",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    """Stage 2: expand selected ideas into lettered variations."""
    configure_logging(verbose, console=console)
    brief = _read(run_dir / BRIEF_FILE)
    generated = IdeasResult.model_validate_json(_read(run_dir / IDEAS_FILE))

    by_id = {idea.id: idea for idea in generated.ideas}
    wanted = _parse_numbers(select)
    missing = [n for n in wanted if n not in by_id]
    if missing:
        console.print(f"[bold red]Error:[/bold red] Unknown idea ids: {missing}")
        raise typer.Exit(code=1)

    pipeline = _get_pipeline(api_key, None, PipelineConfig())
    result = _run(
        "Generating variations...",
        pipeline.variations.run(
            VariationsRequest(brief=brief, selected_ideas=[by_id[n] for n in wanted]),
        ),
    )
    _write(run_dir / VARIATIONS_FILE, result)

    _warn_degraded(result)
    for group in result.variations:
        console.print(
            Panel(
                "\n".join(
                    f"[bold]{group.original_id}{v.letter}. {v.title}[/bold] - {v.shift}"
                    for v in group.variations
                ),
                title=group.original_title,
                border_style="purple",
            ),
        )


@app.command()
def concepts(
    run_dir: Path = typer.Argument(..., help="Run directory created by 'ideas'"),
    select: str = typer.Option(
        ...,
        help="Comma-separated variations as idea id plus letter, e.g. 1A,4C",
    ),
    frames: int = typer.Option(4, min=4, max=8, help="Storyboard frames per concept"),
    images: bool = typer.Option(True, help="Generate storyboard images"),
    api_key: str | None = typer.Option(
        None,
        envvar="GEMINI_API_KEY",
        help="Google Gemini API Key",
    ),
    fal_api_key: str | None = typer.Option(
        None,
        envvar="FAL_API_KEY",
        help="fal.ai API Key for storyboard images",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    """Stage 3: develop selected variations into storyboarded concepts."""
    configure_logging(verbose, console=console)
    brief = _read(run_dir / BRIEF_FILE)
    generated = VariationsResult.model_validate_json(_read(run_dir / VARIATIONS_FILE))

    by_key = {
        f"{group.original_id}{v.letter}".upper(): v
        for group in generated.variations
        for v in group.variations
    }
    wanted = [part.strip().upper() for part in select.split(",") if part.strip()]
    missing = [key for key in wanted if key not in by_key]
    if missing:
        console.print(f"[bold red]Error:[/bold red] Unknown variations: {missing}")
        raise typer.Exit(code=1)

    pipeline = _get_pipeline(api_key, fal_api_key, _config(frames, images))
    result = _run(
        "Developing final concepts...",
        pipeline.final_concepts.run(
            ConceptsRequest(
                brief=brief,
                selected_variations=[by_key[key] for key in wanted],
            ),
        ),
    )
    _write(run_dir / CONCEPTS_FILE, result)

    _warn_degraded(result)
    for concept in result.concepts:
        illustrated = sum(1 for f in concept.storyboard_frames if f.image_url)
        console.print(
            Panel(
                f"[bold]Tagline:[/bold] {concept.tagline}\n"
                f"[bold]Frames:[/bold] {len(concept.storyboard_frames)} "
                f"({illustrated} illustrated)\n\n"
                f"{concept.description}",
                title=f"Concept {concept.number}: {concept.title}",
                border_style="cyan",
            ),
        )
    console.rule("[bold green]Concepts Complete")
    console.print(f"Saved to: [underline]{run_dir / CONCEPTS_FILE}[/underline]")


def _load_concepts(run_dir: Path, number: int) -> tuple[ConceptsResult, int]:
    generated = ConceptsResult.model_validate_json(_read(run_dir / CONCEPTS_FILE))
    for index, concept in enumerate(generated.concepts):
        if concept.number == number:
            return generated, index
    console.print(f"[bold red]Error:[/bold red] Concept {number} not found.")
    raise typer.Exit(code=1)


@app.command()
def refine(
    run_dir: Path = typer.Argument(..., help="Run directory created by 'concepts'"),
    concept: int = typer.Option(..., help="Number of the concept to refine"),
    feedback: str = typer.Option(..., help="Client feedback to address"),
    api_key: str | None = typer.Option(
        None,
        envvar="GEMINI_API_KEY",
        help="Google Gemini API Key",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    """Revise one final concept from client feedback."""
    configure_logging(verbose, console=console)
    brief = _read(run_dir / BRIEF_FILE)
    generated, index = _load_concepts(run_dir, concept)

    pipeline = _get_pipeline(api_key, None, PipelineConfig())
    result = _run(
        "Refining concept...",
        pipeline.refine.run(
            RefineRequest(
                brief=brief,
                concept=generated.concepts[index],
                feedback=feedback,
            ),
        ),
    )

    generated.concepts[index] = result.concept
    _write(run_dir / CONCEPTS_FILE, generated)

    _warn_degraded(result)
    console.print(
        Panel(
            f"[bold]Tagline:[/bold] {result.concept.tagline}\n\n"
            f"{result.concept.description}",
            title=f"Refined Concept {result.concept.number}: {result.concept.title}",
            border_style="green",
        ),
    )


@app.command("frame-image")
def frame_image(
    run_dir: Path = typer.Argument(..., help="Run directory created by 'concepts'"),
    concept: int = typer.Option(..., help="Concept number"),
    frame: int = typer.Option(..., help="Frame number within the concept"),
    fal_api_key: str | None = typer.Option(
        None,
        envvar="FAL_API_KEY",
        help="fal.ai API Key for storyboard images",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    """Generate the image for one storyboard frame."""
    configure_logging(verbose, console=console)
    generated, index = _load_concepts(run_dir, concept)
    target = generated.concepts[index]
    frames = target.storyboard_frames
    if not 1 <= frame <= len(frames):
        console.print(f"[bold red]Error:[/bold red] Frame {frame} not found.")
        raise typer.Exit(code=1)

    config = PipelineConfig()
    fal_api_key = fal_api_key or load_credentials().fal_api_key
    pipeline = Pipeline(None, FalImageService(fal_api_key, config.image), config)
    result = _run(
        f"Illustrating frame {frame}...",
        pipeline.frame_image(
            FrameImageRequest(
                frame=frames[frame - 1],
                concept_title=target.title,
                concept_description=target.description,
            ),
        ),
    )

    if not result.image_url:
        console.print(f"[yellow]Warning: Failed to generate frame {frame}.[/yellow]")
        return

    frames[frame - 1] = frames[frame - 1].model_copy(
        update={"image_url": result.image_url},
    )
    _write(run_dir / CONCEPTS_FILE, generated)
    console.print(f"Frame {frame}: [underline]{result.image_url}[/underline]")


if __name__ == "__main__":
    app()
