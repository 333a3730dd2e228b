"""CLI interface for the Prompt Refinement Garden."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
import typer

# Load environment variables from .env file
load_dotenv()
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from promptgarden.config import GardenConfig, SimilarityMetric, credential_from_env
from promptgarden.errors import GardenError
from promptgarden.importing import CaseImporter
from promptgarden.models import TestCase, ValidationReport
from promptgarden.session import Session
from promptgarden.validation import similarity_score

# Initialize CLI app
app = typer.Typer(
    name="prompt-garden",
    help="Refine LLM prompts from scored feedback and validate them on held-out cases",
    add_completion=False,
)

console = Console()

TRAIN_COMMANDS = ["run", "feedback", "select", "add", "template", "validate", "save", "quit"]


def setup_logging(verbose: bool = False) -> None:
    """Set up logging with rich formatting."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _truncate(text: str, limit: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else f"{text[:limit]}..."


def _build_session(provider: Optional[str], model: Optional[str]) -> Session:
    config = GardenConfig.from_env(provider=provider, model=model)
    credential = credential_from_env(config.provider)
    if credential is None:
        console.print(
            f"[yellow]No API key found for {config.provider.value}. "
            "Set PROMPT_GARDEN_API_KEY or the provider's own variable.[/yellow]"
        )
    return Session(config=config, credential=credential)


def _print_cases(title: str, cases: list[TestCase]) -> None:
    table = Table(title=title)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Prompt", style="cyan")
    table.add_column("Expected Output")

    for index, case in enumerate(cases, 1):
        table.add_row(str(index), _truncate(case.user_prompt), _truncate(case.expected_output))

    console.print(table)


def _print_report(report: ValidationReport) -> None:
    table = Table(title=f"Validation Results ({len(report)} cases)")
    table.add_column("Input", style="cyan")
    table.add_column("Expected")
    table.add_column("Actual")
    table.add_column("Similarity", justify="right")

    for result in report.results:
        color = "green" if result.similarity_score >= 70 else "yellow" if result.similarity_score >= 40 else "red"
        table.add_row(
            _truncate(result.input, 40),
            _truncate(result.expected, 40),
            _truncate(result.actual, 40),
            f"[{color}]{result.similarity_score:.2f}%[/{color}]",
        )

    console.print(table)
    if report.average_score is not None:
        console.print(f"\n[bold]Average similarity:[/bold] {report.average_score}%")


async def _validate_with_progress(session: Session) -> ValidationReport:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Validating...", total=len(session.testing_cases))

        def on_progress(completed: int, total: int, current: Optional[str]) -> None:
            progress.update(task, completed=completed, total=total)

        return await session.run_validation(progress_callback=on_progress)


@app.command()
def cases(
    input_file: str = typer.Argument(..., help="CSV, TSV or XLSX file with prompt/expected output columns"),
    training: int = typer.Option(
        1, "--training", "-t", min=0, help="Number of rows used as training cases"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Preview how a case file splits into training and testing sets.

    Example:
        prompt-garden cases cases.csv --training 3
    """
    setup_logging(verbose)

    input_path = Path(input_file)
    if not input_path.exists():
        console.print(f"[red]Input file not found: {input_file}[/red]")
        sys.exit(1)

    try:
        split = CaseImporter().import_file(input_path, training_count=training)
    except GardenError as e:
        console.print(f"[red]Import failed: {e}[/red]")
        sys.exit(1)

    _print_cases(f"Training Cases ({len(split.training)})", split.training)
    _print_cases(f"Testing Cases ({len(split.testing)})", split.testing)


@app.command()
def similarity(
    expected: str = typer.Argument(..., help="Expected output"),
    actual: str = typer.Argument(..., help="Actual output"),
    metric: SimilarityMetric = typer.Option(
        SimilarityMetric.DICE, "--metric", "-m", help="Similarity metric"
    ),
) -> None:
    """
    Score how closely two texts match, from 0 to 100.

    Example:
        prompt-garden similarity "hello world" "hello there" --metric rouge_l
    """
    score = similarity_score(expected, actual, metric)
    console.print(f"[bold]{metric.value}[/bold] similarity: [cyan]{score:.2f}%[/cyan]")


async def _train_loop(session: Session, save_path: Optional[Path]) -> None:
    while True:
        engine = session.engine
        case_label = (
            f"{engine.active_index + 1}/{len(session.training_cases)}"
            if session.training_cases else "new"
        )
        console.print(
            f"\n[bold]Case {case_label}[/bold] "
            f"[dim]({engine.state.value}, {len(session.iterations)} iterations)[/dim]"
        )

        command = Prompt.ask("Command", choices=TRAIN_COMMANDS, default="run", console=console)

        try:
            if command == "quit":
                break

            elif command == "run":
                prompt = Prompt.ask(
                    "Prompt",
                    default=engine.current_prompt,
                    show_default=bool(engine.current_prompt),
                    console=console,
                )
                expected = Prompt.ask(
                    "Expected output", default=engine.current_expected or "", console=console
                )
                index = engine.active_index if session.training_cases else 0
                with console.status("Generating..."):
                    outcome = await session.submit_run(index, prompt, expected)
                console.print(Panel(outcome.output, title="Generated Output", border_style="blue"))

            elif command == "feedback":
                score = IntPrompt.ask("Score (1-5)", console=console)
                feedback = Prompt.ask("Feedback", default="", console=console)
                with console.status("Improving..."):
                    outcome = await session.submit_feedback(feedback, score)

                if outcome.converged:
                    console.print("[green]Case converged. Its prompt is now the template.[/green]")
                else:
                    console.print(Panel(outcome.revised_output or "", title="Improved Output", border_style="blue"))
                    if outcome.synthesis and not outcome.synthesis.success:
                        console.print(
                            f"[yellow]Template not updated: {outcome.synthesis.error}[/yellow]"
                        )

            elif command == "select":
                if not session.training_cases:
                    console.print("[yellow]No training cases yet[/yellow]")
                    continue
                _print_cases("Training Cases", session.training_cases)
                index = IntPrompt.ask("Case number", console=console)
                session.select_case(index - 1)

            elif command == "add":
                index = session.add_training_case()
                console.print(f"Added training case {index + 1}")

            elif command == "template":
                with console.status("Synthesizing template..."):
                    await session.regenerate_template()
                console.print(Panel(session.template or "", title="Optimized Template", border_style="green"))

            elif command == "validate":
                report = await _validate_with_progress(session)
                _print_report(report)

            elif command == "save":
                path = save_path or Path(Prompt.ask("Save to", default="session.json", console=console))
                session.save(path)
                console.print(f"[green]Session saved to: {path}[/green]")

        except GardenError as e:
            console.print(f"[red]{e}[/red]")


@app.command()
def train(
    input_file: Optional[str] = typer.Argument(
        None, help="CSV, TSV or XLSX file with prompt/expected output columns"
    ),
    training: int = typer.Option(
        1, "--training", "-t", min=0, help="Number of rows used as training cases"
    ),
    resume: Optional[str] = typer.Option(
        None, "--resume", "-r", help="Resume a saved session JSON file"
    ),
    save: Optional[str] = typer.Option(
        None, "--save", "-s", help="Save the session to this file on exit"
    ),
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="LLM provider: mistral, anthropic or gemini"
    ),
    model: Optional[str] = typer.Option(
        None, "--model", help="Model name (defaults to the provider's default)"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Interactively refine prompts with scored feedback.

    Run a training prompt, score the output from 1 to 5 and describe what to
    improve. Every score below 5 produces an improved output and a new
    optimized template; a 5 adopts the prompt as the template.

    Example:
        prompt-garden train cases.csv --training 3 --save session.json
    """
    setup_logging(verbose)

    try:
        if resume:
            config = GardenConfig.from_env(provider=provider, model=model)
            session = Session.load(
                Path(resume),
                config=config,
                credential=credential_from_env(config.provider),
            )
        else:
            session = _build_session(provider, model)
            if input_file:
                split = session.import_cases(Path(input_file), training_count=training)
                console.print(
                    f"Imported {len(split.training)} training and {len(split.testing)} testing cases"
                )
    except Exception as e:
        console.print(f"[red]Failed to start session: {e}[/red]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold blue]Prompt Refinement[/bold blue]\n"
        f"Provider: {session.config.provider.value} ({session.config.get_model_name()})\n"
        f"Training cases: {len(session.training_cases)}  "
        f"Testing cases: {len(session.testing_cases)}",
        title="Prompt Garden",
    ))

    save_path = Path(save) if save else None

    async def run_session() -> None:
        try:
            await _train_loop(session, save_path)
        finally:
            await session.close()

    try:
        asyncio.run(run_session())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")

    if save_path:
        session.save(save_path)
        console.print(f"[green]Session saved to: {save_path}[/green]")

    costs = session.get_cost_summary()
    console.print(
        f"\n[dim]{costs.get('total_requests', 0)} requests, "
        f"${costs.get('total_cost_usd', 0.0):.4f}[/dim]"
    )


@app.command()
def validate(
    session_file: str = typer.Argument(..., help="Saved session JSON file"),
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="LLM provider: mistral, anthropic or gemini"
    ),
    model: Optional[str] = typer.Option(
        None, "--model", help="Model name (defaults to the provider's default)"
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", help="Testing cases validated at once"
    ),
    save: bool = typer.Option(
        True, "--save/--no-save", help="Store the report back into the session file"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Validate a saved session's template against its testing cases.

    Example:
        prompt-garden validate session.json --concurrency 8
    """
    setup_logging(verbose)

    session_path = Path(session_file)
    if not session_path.exists():
        console.print(f"[red]Session file not found: {session_file}[/red]")
        sys.exit(1)

    try:
        config = GardenConfig.from_env(
            provider=provider,
            model=model,
            validation_concurrency=concurrency,
        )
        session = Session.load(
            session_path,
            config=config,
            credential=credential_from_env(config.provider),
        )
    except Exception as e:
        console.print(f"[red]Failed to load session: {e}[/red]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold blue]Template Validation[/bold blue]\n"
        f"Testing cases: {len(session.testing_cases)}\n"
        f"Iterations: {len(session.iterations)}",
        title="Prompt Garden",
    ))

    async def run_validation() -> ValidationReport:
        try:
            return await _validate_with_progress(session)
        finally:
            await session.close()

    try:
        report = asyncio.run(run_validation())
    except Exception as e:
        console.print(f"\n[red]Validation failed: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    _print_report(report)

    if save:
        session.save(session_path)
        console.print(f"\n[green]Report saved to: {session_path}[/green]")


@app.callback()
def main():
    """
    Prompt Refinement Garden

    Iteratively refine prompts from scored feedback, synthesize a reusable
    template and validate it against held-out test cases.
    """
    pass


if __name__ == "__main__":
    app()
