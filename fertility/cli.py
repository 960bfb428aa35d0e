"""
CLI for the housing prices and fertility study.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from fertility.errors import ConfigurationError, PipelineError

app = typer.Typer(
    name="fertility",
    help="Housing prices and household fertility: cleaning and FE/IV estimation",
)
console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Configure logging with rich output."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _report_failure(error: PipelineError) -> None:
    """Print the stage and offending field/predicate of an aborted run."""
    console.print(f"[red]Run aborted: {escape(str(error))}[/red]")
    if error.stage:
        console.print(f"  stage: {error.stage}")
    if isinstance(error, ConfigurationError):
        if error.predicate:
            console.print(f"  predicate: {error.predicate}")
        if error.field:
            console.print(f"  field: {error.field}")


def _load_table(table_path: Optional[Path], sample: str):
    from config.settings import get_settings
    from fertility.data.data_pipeline import clean_table_path, load_clean_table
    from fertility.data.ingest import load_table

    if table_path:
        return load_table(table_path)

    settings = get_settings()
    if not clean_table_path(settings, sample).exists():
        console.print(f"[red]Estimation table not found. Run 'clean --sample {sample}' first.[/red]")
        raise typer.Exit(1)
    return load_clean_table(sample, settings)


@app.command()
def clean(
    sample: str = typer.Option("baseline", help="Sample: baseline, price_floor, winsor_by_year"),
    household: Optional[Path] = typer.Option(None, help="Household microdata file"),
    city: Optional[Path] = typer.Option(None, help="City statistics file"),
    save: bool = typer.Option(True, help="Persist the estimation table and reports"),
):
    """Run the cleaning phase and build the estimation table."""
    from config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    from fertility.data.data_pipeline import CleaningPipeline

    console.print(f"[bold]Cleaning ({sample} sample)...[/bold]")
    try:
        pipeline = CleaningPipeline(settings=settings, sample=sample)
        result = pipeline.run_from_files(household, city)
        if save:
            pipeline.save(result)
    except PipelineError as e:
        _report_failure(e)
        raise typer.Exit(1)

    table = Table(title="Sample attrition")
    table.add_column("Predicate")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Dropped", justify="right")
    for step in result.filter_report.steps:
        table.add_row(step.name, str(step.rows_before), str(step.rows_after), str(step.dropped))
    console.print(table)

    console.print(f"Estimation table: {result.table.shape}")
    for name, path in result.paths.items():
        console.print(f"  {name}: {path}")

    warnings = result.quality.get_warnings()
    if warnings:
        console.print(f"\n[yellow]{len(warnings)} missingness warnings[/yellow]")


@app.command()
def describe(
    sample: str = typer.Option("baseline", help="Sample configuration to describe"),
    table_path: Optional[Path] = typer.Option(None, help="Path to an estimation table"),
    save: bool = typer.Option(True, help="Export CSV and markdown"),
):
    """Descriptive statistics for the key variables."""
    from config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    from fertility.data.variable_dictionary import load_variable_dictionary
    from fertility.model.descriptive import describe as describe_table
    from fertility.model.descriptive import save_descriptives

    df = _load_table(table_path, sample)
    try:
        labels = load_variable_dictionary(settings.variable_dictionary_path).labels()
        stats = describe_table(df, labels=labels)
    except PipelineError as e:
        _report_failure(e)
        raise typer.Exit(1)

    table = Table(title=f"Descriptive statistics ({sample})")
    for col in ["Variable", "N", "Mean", "SD", "Median", "Min", "Max"]:
        table.add_column(col, justify="left" if col == "Variable" else "right")
    for _, r in stats.iterrows():
        table.add_row(
            r["variable"],
            str(r["n"]),
            f"{r['mean']:.3f}",
            f"{r['sd']:.3f}",
            f"{r['median']:.3f}",
            f"{r['min']:.3f}",
            f"{r['max']:.3f}",
        )
    console.print(table)

    if save:
        paths = save_descriptives(
            stats,
            settings.project_root / settings.tables_dir,
            stem=f"descriptive_statistics_{sample}",
        )
        console.print(f"Saved to {paths['markdown']}")


@app.command("check-specs")
def check_specs(
    specs: str = typer.Option("all", help="Specification set: main, robustness, all"),
    sample: str = typer.Option("baseline", help="Sample configuration"),
    table_path: Optional[Path] = typer.Option(None, help="Path to an estimation table"),
):
    """Validate specifications against the estimation table without estimating."""
    from config.settings import get_settings

    setup_logging(get_settings().log_level)

    from fertility.engine.runner import EstimationRunner
    from fertility.model.specification import get_spec_set

    df = _load_table(table_path, sample)
    try:
        validated = EstimationRunner(df, sample).check(get_spec_set(specs))
    except PipelineError as e:
        _report_failure(e)
        raise typer.Exit(1)

    table = Table(title="Validated specifications")
    table.add_column("Spec")
    table.add_column("Design")
    table.add_column("N", justify="right")
    table.add_column("FE levels")
    table.add_column("Clusters", justify="right")
    for v in validated:
        fe = ", ".join(f"{k}={n}" for k, n in v.fe_levels.items())
        table.add_row(v.spec.name, v.spec.design, str(v.n_obs), fe, str(v.n_clusters))
    console.print(table)


@app.command()
def estimate(
    specs: str = typer.Option("main", help="Specification set: main, robustness, all"),
    sample: str = typer.Option("baseline", help="Sample configuration"),
    table_path: Optional[Path] = typer.Option(None, help="Path to an estimation table"),
    save: bool = typer.Option(True, help="Export JSON and markdown results"),
):
    """Estimate a set of FE-OLS / FE-IV specifications."""
    from config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    from fertility.engine.runner import EstimationRunner
    from fertility.model.specification import get_spec_set

    df = _load_table(table_path, sample)
    console.print(f"[bold]Estimating '{specs}' specifications on the {sample} sample...[/bold]")
    try:
        batch = EstimationRunner(df, sample).run(get_spec_set(specs))
    except PipelineError as e:
        _report_failure(e)
        raise typer.Exit(1)

    table = Table(title="Estimates (SE clustered by city)")
    for col in ["Spec", "Design", "Treatment", "Coef", "SE", "p", "N", "First-stage F"]:
        table.add_column(col, justify="left" if col in ("Spec", "Design", "Treatment") else "right")
    for r in batch.results:
        fs = r.diagnostics.get("first_stage_f", {}).get(r.treatment)
        table.add_row(
            r.spec_name,
            r.design,
            r.treatment,
            f"{r.point:.4f}",
            f"{r.se:.4f}",
            f"{r.pvalue:.3f}",
            str(r.n_obs),
            f"{fs:.2f}" if fs is not None else "-",
        )
    console.print(table)

    for f in batch.failures:
        console.print(f"[red]{f.spec_name}: {escape(f.message)}[/red]")

    if save:
        paths = batch.save(settings.project_root / settings.tables_dir)
        console.print(f"Saved to {paths['json']}")

    if batch.failures and not batch.results:
        raise typer.Exit(1)


@app.command()
def config():
    """Show settings, scaling constants and registered specifications."""
    from config.settings import get_settings
    from fertility.data.constants import SCALING_CONSTANTS
    from fertility.model.sample import SAMPLE_CONFIGS
    from fertility.model.specification import ALL_SPECS

    settings = get_settings()

    console.print("[bold]Settings[/bold]")
    for name, value in settings.model_dump().items():
        console.print(f"  {name}: {value}")

    table = Table(title="Scaling constants")
    table.add_column("Name")
    table.add_column("Operation")
    table.add_column("Value", justify="right")
    for c in SCALING_CONSTANTS.values():
        table.add_row(c.name, c.operation, f"{c.value:g}")
    console.print(table)

    console.print(f"\nSample configurations: {', '.join(SAMPLE_CONFIGS)}")
    console.print("\n[bold]Specifications[/bold]")
    for spec in ALL_SPECS:
        console.print(f"  {spec.name} ({spec.design}): {spec.formula()}")


if __name__ == "__main__":
    app()
