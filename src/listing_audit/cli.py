"""Typer CLI: ``listing-audit score | analyze | plan | usage | validate``."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from listing_audit.config import load_config
from listing_audit.errors import ListingAuditError
from listing_audit.schemas.config import ServiceConfig
from listing_audit.schemas.usage import GuardResult

# Load .env file from project root (if it exists)
load_dotenv()

app = typer.Typer(
    name="listing-audit",
    help="Listing Audit — score product listings and plan improvements.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT = "local"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every HTTP request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load(config: Path | None) -> ServiceConfig:
    try:
        return load_config(config)
    except Exception as exc:
        console.print(f"[red]Config validation failed:[/] {escape(str(exc))}")
        raise typer.Exit(code=1)


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        console.print(f"[red]File not found:[/] {path}")
        raise typer.Exit(code=1)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        console.print(f"[red]{path} is not valid JSON:[/] {escape(str(exc))}")
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        console.print(f"[red]{path} must contain a JSON object[/]")
        raise typer.Exit(code=1)
    return data


def _make_pipeline(cfg: ServiceConfig, *, offline: bool):
    from listing_audit.pipeline import AnalysisPipeline

    if offline:
        from listing_audit.shared.llm_client import DryRunClient
        client = DryRunClient()
    else:
        from listing_audit.shared.llm_client import LLMClient
        client = LLMClient(
            text_model=cfg.models.text_model,
            vision_model=cfg.models.vision_model,
            max_tokens=cfg.models.max_tokens,
            temperature=cfg.models.temperature,
        )
    return AnalysisPipeline(client, cfg)


def _print_denial(result: GuardResult) -> None:
    console.print(f"[yellow]Usage denied ({result.code}):[/] {result.message}")
    if result.limit is not None:
        console.print(f"  Used {result.used} of {result.limit} ({result.limit_key})")
    if result.reset_at:
        console.print(f"  Resets at {result.reset_at.isoformat()}")


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except ListingAuditError as exc:
        console.print(f"[red]{type(exc).__name__}:[/] {escape(str(exc))}")
        raise typer.Exit(code=1)
    except ExceptionGroup as group:
        logger.error("Analysis aborted", exc_info=group)
        for exc in group.exceptions:
            console.print(f"[red]{type(exc).__name__}:[/] {escape(str(exc))}")
        raise typer.Exit(code=1)


@app.command()
def validate(
    config: Path = typer.Option(..., "--config", "-c", help="Path to listing-audit.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Validate a configuration file without running anything."""
    _setup_logging(verbose)
    cfg = _load(config)

    console.print("[green]Config is valid![/]\n")
    console.print(f"  Text model:   {cfg.models.text_model}")
    console.print(f"  Vision model: {cfg.models.vision_model}")
    t = cfg.timeouts
    console.print(f"  Timeouts:     vision {t.vision}s, reasoning {t.reasoning}s, summary {t.summary}s, plan {t.plan}s")
    console.print(f"  Usage store:  {cfg.usage.store_path or '(in memory)'}")
    console.print(f"  Default tier: {cfg.usage.default_tier.value}")
    console.print(f"  Accounts:     {len(cfg.usage.accounts)}")
    console.print(f"  Output dir:   {cfg.output_directory}")


@app.command()
def score(
    input: Path = typer.Option(..., "--input", "-i", help="Listing payload JSON"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to listing-audit.yml"),
    account: str = typer.Option(DEFAULT_ACCOUNT, "--account", "-a"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Bypass the usage guard (nothing checked or recorded)."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Compute the rule-based score (0–100) for one listing."""
    _setup_logging(verbose)
    cfg = _load(config)
    payload = _read_json(input)

    # The rule score makes no model calls.
    pipeline = _make_pipeline(cfg, offline=True)
    result = _run(pipeline.run_score(payload, account, dry_run=dry_run))
    if isinstance(result, GuardResult):
        _print_denial(result)
        raise typer.Exit(code=2)

    table = Table(title=f"Rule score — {result.asin}")
    table.add_column("Category")
    table.add_column("Score", justify="right")
    for name, entry in result.score.breakdown.items():
        table.add_row(name, f"{entry.score}/{entry.max}")
    table.add_row("[bold]total[/]", f"[bold]{result.score.total}/100[/]")
    console.print(table)
    if result.score.missing_signals:
        console.print(f"[dim]Missing signals:[/] {', '.join(result.score.missing_signals)}")


@app.command()
def analyze(
    input: Path = typer.Option(..., "--input", "-i", help="Listing payload JSON"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to listing-audit.yml"),
    account: str = typer.Option(DEFAULT_ACCOUNT, "--account", "-a"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Bypass the usage guard (nothing checked or recorded)."),
    offline: bool = typer.Option(False, "--offline", help="Use canned model output (no API calls); implies --dry-run."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Compute the rule score and the reasoning score; write analysis.json."""
    _setup_logging(verbose)
    cfg = _load(config)
    payload = _read_json(input)
    dry_run = dry_run or offline

    if offline:
        console.print("[yellow]OFFLINE mode — no API calls will be made.[/]\n")

    from listing_audit.output.response import write_response
    from listing_audit.shared.progress import PipelineProgress

    pipeline = _make_pipeline(cfg, offline=offline)
    with PipelineProgress() as progress:
        progress.start_step("Reasoning score")
        result = _run(pipeline.run_analysis(
            payload, account, dry_run=dry_run,
            on_event=progress.log_event,
            on_tokens=progress.record_tokens,
        ))
        if isinstance(result, GuardResult):
            progress.fail_step("Reasoning score", "usage denied")
        else:
            progress.finish_step("Reasoning score", f"{result.reasoning.total}/100")

    if isinstance(result, GuardResult):
        _print_denial(result)
        raise typer.Exit(code=2)

    table = Table(title=f"Analysis — {result.asin}")
    table.add_column("Category")
    table.add_column("Score", justify="right")
    table.add_column("Vision")
    table.add_column("Note")
    for name, analysis in result.reasoning.analyses.items():
        note = "[yellow]fallback[/]" if analysis.degraded else ""
        table.add_row(name, f"{analysis.total}/{sum(analysis.maxima.values())}", analysis.vision, note)
    console.print(table)
    console.print(
        f"Rule score [bold]{result.score.total}/100[/]  "
        f"Reasoning score [bold]{result.reasoning.total}/100[/]  "
        f"Total [bold]{result.total_score}/200[/]"
    )
    if result.message:
        console.print(f"[yellow]{result.message}[/]")
    if progress.input_tokens or progress.output_tokens:
        console.print(f"[dim]Tokens: {progress.input_tokens} in / {progress.output_tokens} out[/]")

    path = write_response(result, cfg.output_directory, "analysis.json")
    console.print(f"\n[green]Analysis written to:[/] {path}")


@app.command()
def plan(
    analysis: Path = typer.Option(..., "--analysis", help="analysis.json from a previous run"),
    input: Path = typer.Option(None, "--input", "-i", help="Original listing payload (title, negative reviews)"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to listing-audit.yml"),
    account: str = typer.Option(DEFAULT_ACCOUNT, "--account", "-a"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Bypass the usage guard (nothing checked or recorded)."),
    offline: bool = typer.Option(False, "--offline", help="Use canned model output (no API calls); implies --dry-run."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Generate an improvement plan from a saved analysis; write improvement-plan.json."""
    from pydantic import ValidationError

    from listing_audit.normalizer import normalize
    from listing_audit.output.response import write_response
    from listing_audit.schemas.plan import PlanContext
    from listing_audit.schemas.response import AnalysisResponse

    _setup_logging(verbose)
    cfg = _load(config)
    dry_run = dry_run or offline

    try:
        saved = AnalysisResponse.model_validate(_read_json(analysis))
    except ValidationError as exc:
        console.print(f"[red]{analysis} is not a valid analysis:[/] {escape(str(exc))}")
        raise typer.Exit(code=1)

    context = PlanContext()
    if input is not None:
        try:
            inp = normalize(_read_json(input))
        except ListingAuditError as exc:
            console.print(f"[red]Invalid listing payload:[/] {escape(str(exc))}")
            raise typer.Exit(code=1)
        context = PlanContext(product_title=inp.title, negative_reviews=inp.reviews.negative_reviews)

    pipeline = _make_pipeline(cfg, offline=offline)
    result = _run(pipeline.run_improvement_plan(saved, account, context=context, dry_run=dry_run))
    if isinstance(result, GuardResult):
        _print_denial(result)
        raise typer.Exit(code=2)

    p = result.improvement_plan
    if p.degraded:
        console.print("[yellow]The plan could not be generated; showing an empty plan.[/]")
    console.print(f"\n[bold]Current {p.current_total}/200 → estimated {p.estimated_total_after}/200 (+{p.score_gap})[/]\n")
    for action in p.actions:
        delta = action.total_delta
        console.print(f"  [bold]{action.priority}[/] [{action.section}] {action.action} [dim](+{delta})[/]")

    path = write_response(result, cfg.output_directory, "improvement-plan.json")
    console.print(f"\n[green]Improvement plan written to:[/] {path}")


@app.command()
def usage(
    account: str = typer.Option(DEFAULT_ACCOUNT, "--account", "-a"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to listing-audit.yml"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show an account's plan, monthly limits and remaining usage."""
    from listing_audit.pipeline import build_guard

    _setup_logging(verbose)
    cfg = _load(config)
    status = _run(build_guard(cfg.usage).status(account))

    table = Table(title=f"Usage — {account} ({status.plan.value})")
    table.add_column("Feature")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    for feature, limit in status.limits.items():
        remaining = status.remaining[feature]
        table.add_row(
            feature.value,
            str(status.used[feature]),
            "unlimited" if limit is None else str(limit),
            "unlimited" if remaining is None else str(remaining),
        )
    console.print(table)
    console.print(f"[dim]Resets at {status.resets_at.isoformat()}[/]")
