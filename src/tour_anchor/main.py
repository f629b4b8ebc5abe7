"""
Tour Anchor - CLI Entry Point.

Configuration Priority:
    1. CLI arguments (--timeout, --visible, etc.)
    2. Environment variables (TOUR_ANCHOR__LOCATOR__WAIT_TIMEOUT_MS, etc.)
    3. Config file (tour-anchor.yaml)

Usage:
    tour-anchor find https://example.com "[data-testid=checkout]" ".checkout"
    tour-anchor validate-steps https://example.com tour.yaml
    tour-anchor fallbacks "#save-button"
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tour_anchor.browsers import PlaywrightBrowser
from tour_anchor.config import Settings, get_settings, load_config
from tour_anchor.engine.fallback import generate_fallback_selectors
from tour_anchor.engine.models import ElementValidationResult, TourStepsReport, ValidationReport
from tour_anchor.engine.selectors import check_selector_shape
from tour_anchor.engine.tour_validator import TourElementValidator
from tour_anchor.exceptions import BrowserError, ConfigurationError
from tour_anchor.utils.logging import setup_logging

# Create the CLI app
app = typer.Typer(
    name="tour-anchor",
    help="Resolve, observe and diagnose product tour anchor elements",
    add_completion=False,
)

console = Console()

logger = logging.getLogger(__name__)


def _settings(config: Optional[str], visible: bool = False) -> Settings:
    try:
        settings = load_config(config_path=config) if config else get_settings()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    if visible:
        settings = settings.merge_with({"browser": {"headless": False}})
    return settings


def _load_steps(path: Path) -> Any:
    """Read a YAML or JSON list of tour steps."""
    text = path.read_text()
    if path.suffix.lower() == ".json":
        return json.loads(text)
    data = yaml.safe_load(text)
    # Allow a top-level {"steps": [...]} wrapper
    if isinstance(data, dict) and "steps" in data:
        return data["steps"]
    return data


def _print_result(result: ElementValidationResult) -> None:
    status = "[green]✓ Found[/green]" if result.found else "[red]✗ Not found[/red]"
    lines = [
        status,
        f"[dim]Selector:[/dim] {escape(result.selector)}",
        f"[dim]Method:[/dim] {result.validation_method.value}",
        f"[dim]Search time:[/dim] {result.performance.search_time_ms:.0f}ms",
        f"[dim]Candidates tried:[/dim] {result.performance.fallbacks_attempted}",
    ]
    if result.fallback_used:
        lines.append("[yellow]Fallback selector used[/yellow]")
    if result.error:
        lines.append(f"[dim]Error:[/dim] {escape(result.error)}")
    console.print(Panel.fit("\n".join(lines), border_style="green" if result.found else "red"))

    details = result.error_details
    if details and details.suggestions:
        console.print(f"[bold]{details.code.value}[/bold] ({details.severity.value})")
        for suggestion in details.suggestions:
            console.print(f"  • {escape(suggestion)}")


def _print_health(report: ValidationReport) -> None:
    stats = report.performance_stats
    table = Table(title="Engine health", show_header=False, box=None)
    table.add_row("Health score", str(report.health_score))
    table.add_row("Grade", stats.performance_grade.value)
    table.add_row("Searches", str(stats.total_searches))
    table.add_row("Success rate", f"{stats.success_rate:.1f}%")
    table.add_row("Average search", f"{stats.average_search_time_ms:.0f}ms")
    table.add_row("Active observers", str(report.observer_stats.active_observers))
    console.print(table)
    for recommendation in report.recommendations:
        console.print(f"  [dim]•[/dim] {escape(recommendation)}")


def _print_steps(report: TourStepsReport) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("#", width=3)
    table.add_column("Selector")
    table.add_column("Status", width=10)
    table.add_column("Time", justify="right")
    for i, result in enumerate(report.results, 1):
        status = "[green]found[/green]" if result.found else "[red]missing[/red]"
        table.add_row(str(i), escape(result.selector), status, f"{result.performance.search_time_ms:.0f}ms")
    console.print(table)

    for error in report.errors:
        console.print(f"[red]✗ {escape(error)}[/red]")
    for step in report.performance.slow_steps:
        console.print(f"[yellow]⚠ Slow step {step.index + 1}: {escape(step.selector)} ({step.time_ms:.0f}ms)[/yellow]")
    console.print()
    for recommendation in report.recommendations:
        console.print(f"  [dim]•[/dim] {escape(recommendation)}")


async def _find_async(url: str, selectors: List[str], timeout: Optional[int], settings: Settings, as_json: bool) -> bool:
    browser = PlaywrightBrowser(settings.browser)
    try:
        await browser.launch()
        document = await browser.open(url)
        validator = TourElementValidator(document, settings=settings)

        candidates: Any = selectors[0] if len(selectors) == 1 else selectors
        result = await validator.find_element(candidates, timeout)
        position = await validator.get_element_position(result.element) if result.found else None
        validator.force_cleanup_all_observers()

        if as_json:
            console.print_json(data={
                "result": result.to_dict(),
                "position": position.to_dict() if position else None,
            })
        else:
            _print_result(result)
            if position:
                console.print(
                    f"[dim]Position:[/dim] top={position.top:.0f} left={position.left:.0f} "
                    f"size={position.width:.0f}x{position.height:.0f} "
                    f"in-viewport={position.viewport.visible_area:.0%}"
                )
        return result.found
    finally:
        await browser.close()


async def _validate_steps_async(url: str, steps: Any, settings: Settings, as_json: bool) -> bool:
    browser = PlaywrightBrowser(settings.browser)
    try:
        await browser.launch()
        document = await browser.open(url)
        validator = TourElementValidator(document, settings=settings)

        report = await validator.validate_tour_steps(steps)
        health = validator.get_validation_report()
        validator.force_cleanup_all_observers()

        if as_json:
            console.print_json(data={"steps": report.to_dict(), "health": health.to_dict()})
        else:
            _print_steps(report)
            console.print()
            _print_health(health)
        return report.valid
    finally:
        await browser.close()


@app.command()
def find(
    url: str = typer.Argument(..., help="Page to inspect"),
    selectors: List[str] = typer.Argument(..., help="Candidate selectors, most preferred first"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Bounded wait in milliseconds"),
    visible: bool = typer.Option(False, "--visible", "-v", help="Run with visible browser"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Find a tour anchor on a live page.

    Examples:
        tour-anchor find https://example.com "#checkout" ".checkout-button"
        tour-anchor find https://example.com "button:contains('Save')" --timeout 2000
    """
    settings = _settings(config, visible)
    setup_logging(settings.logging, "DEBUG" if verbose else None)

    try:
        found = asyncio.run(_find_async(url, selectors, timeout, settings, as_json))
    except BrowserError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    if not found:
        raise typer.Exit(1)


@app.command("validate-steps")
def validate_steps(
    url: str = typer.Argument(..., help="Page to inspect"),
    steps_file: str = typer.Argument(..., help="YAML or JSON list of steps with an 'element' field"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Per-step wait in milliseconds"),
    visible: bool = typer.Option(False, "--visible", "-v", help="Run with visible browser"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Check that every step of a tour can find its anchor.

    Exits with status 1 when any step is missing or invalid.
    """
    path = Path(steps_file)
    if not path.exists():
        console.print(f"[red]✗ File not found: {escape(steps_file)}[/red]")
        raise typer.Exit(2)
    try:
        steps = _load_steps(path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        console.print(f"[red]✗ Could not parse {escape(steps_file)}: {escape(str(e))}[/red]")
        raise typer.Exit(2)

    settings = _settings(config, visible)
    setup_logging(settings.logging, "DEBUG" if verbose else None)
    if timeout is not None:
        settings = settings.merge_with({"locator": {"step_validation_timeout_ms": timeout}})

    if not as_json:
        count = len(steps) if isinstance(steps, list) else 0
        console.print(Panel.fit(
            f"[bold blue]Tour Anchor[/bold blue]\n"
            f"[dim]Page:[/dim] {escape(url)}\n"
            f"[dim]Steps:[/dim] {count}",
            border_style="blue",
        ))

    try:
        valid = asyncio.run(_validate_steps_async(url, steps, settings, as_json))
    except BrowserError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    if not valid:
        raise typer.Exit(1)


@app.command()
def fallbacks(
    selector: str = typer.Argument(..., help="Primary selector"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
):
    """
    Show generated fallback selectors for a selector (no browser needed).
    """
    check = check_selector_shape(selector)
    candidates = generate_fallback_selectors(selector)

    if as_json:
        console.print_json(data={"selector": selector, "check": check.to_dict(), "fallbacks": candidates})
        return

    if check.is_valid:
        console.print(f"[green]✓ {escape(selector)}[/green]")
    else:
        console.print(f"[yellow]⚠ {escape(selector)}: {check.error}[/yellow]")
        if check.suggestion:
            console.print(f"  [dim]{escape(check.suggestion)}[/dim]")

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("#", width=3)
    table.add_column("Fallback selector")
    for i, candidate in enumerate(candidates, 1):
        table.add_row(str(i), escape(candidate))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    from tour_anchor import __version__
    console.print(f"tour-anchor version {__version__}")


if __name__ == "__main__":
    app()
