"""CLI interface for tidy-kg."""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from tidy_kg.config import PROJECT_FILE, TidyConfig
from tidy_kg.errors import RestoreFailureError, TidyKGError

app = typer.Typer(
    name="tidy",
    help="Typed relationships and duplicate cleanup for extracted knowledge graphs",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

DomainOption = typer.Option(None, "--domain", "-d", help="Domain to work on (default from config)")
DataDirOption = typer.Option(None, "--data-dir", help="Data directory (default from config)")
VerboseOption = typer.Option(False, "-v", "--verbose", help="Verbose logging")


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def _load_config(data_dir: str | None, domain: str | None) -> TidyConfig:
    """TidyConfig with CLI flags applied on top of env / tidy.yaml."""
    overrides = {}
    if data_dir:
        overrides["data_dir"] = data_dir
    if domain:
        overrides["domain"] = domain
    try:
        return TidyConfig(**overrides)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(1) from None


def _registry(config: TidyConfig):
    from tidy_kg.registry import RelationshipTypeRegistry

    try:
        return RelationshipTypeRegistry.from_bundled(extra_paths=config.catalog_paths)
    except ValueError as e:
        _fail(e)


def _service(config: TidyConfig):
    from tidy_kg.merge.service import MergeService

    try:
        return MergeService.from_config(config)
    except ValueError as e:
        _fail(e)


# ============================================================================
# Relationship Commands
# ============================================================================


@app.command()
def types(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """List relationship types available in a domain."""
    config = _load_config(data_dir, domain)
    registry = _registry(config)
    definitions = registry.relationships_for_domain(config.domain)

    table = Table(
        title=f"Relationship Types ({config.domain})", show_header=True, header_style="bold cyan"
    )
    table.add_column("Type", style="green")
    table.add_column("Domains")
    table.add_column("Cardinality")
    table.add_column("Inverse")
    table.add_column("Description")

    for type_name, definition in sorted(definitions.items()):
        flags = " ↔" if definition.bidirectional else ""
        table.add_row(
            f"{type_name}{flags}",
            ", ".join(sorted(definition.domains)),
            definition.cardinality,
            definition.inverse or "",
            definition.description.strip().split("\n")[0],
        )

    console.print(table)


@app.command()
def infer(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    apply: bool = typer.Option(False, "--apply", help="Attach the proposals and save the entity sets"),
    verbose: bool = VerboseOption,
) -> None:
    """Infer relationships between the entity sets of a domain."""
    _setup_logging(verbose)
    config = _load_config(data_dir, domain)

    from tidy_kg.infer import ContentRelationshipInference
    from tidy_kg.schema import EntitySchema
    from tidy_kg.storage import load_entity_sets, save_entity_set

    entity_sets = load_entity_sets(config.data_dir, config.domain)
    if not entity_sets:
        console.print(f"[yellow]No entity sets found for domain '{config.domain}'[/yellow]")
        raise typer.Exit(0)

    schema = EntitySchema(_registry(config))
    engine = ContentRelationshipInference(schema)
    proposals = engine.infer_relationships(entity_sets, config.domain)

    table = Table(title=f"Inferred Relationships ({len(proposals)})", header_style="bold cyan")
    table.add_column("Source", style="green")
    table.add_column("Type")
    table.add_column("Target", style="green")
    table.add_column("Confidence", justify="right")
    table.add_column("Rule", style="dim")
    for proposal in proposals:
        table.add_row(
            str(proposal.source_id),
            proposal.type,
            str(proposal.target_id),
            f"{proposal.confidence:.2f}",
            proposal.rule,
        )
    console.print(table)

    if not apply:
        console.print("[dim]Dry run. Use --apply to attach and save these relationships.[/dim]")
        return

    stats = engine.apply_relationships_to_entities(entity_sets, proposals)
    for entity_set in entity_sets:
        save_entity_set(entity_set, config.data_dir, config.domain)
    console.print(
        f"[green]Applied {stats['applied']} relationships[/green] "
        f"({stats['skipped']} rejected by validation)"
    )


@app.command()
def migrate(
    domain: str | None = typer.Option(None, "--domain", "-d", help="Migrate one domain (default: all)"),
    data_dir: str | None = DataDirOption,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing files"),
    backup: bool = typer.Option(False, "--backup", help="Copy each domain directory before migrating"),
    verbose: bool = VerboseOption,
) -> None:
    """Upgrade stored entity sets to schema 2.0.0 with inferred relationships."""
    _setup_logging(verbose)
    config = _load_config(data_dir, None)

    from tidy_kg.infer import MigrationUtility
    from tidy_kg.schema import EntitySchema
    from tidy_kg.storage import list_domains

    utility = MigrationUtility(config.data_dir, EntitySchema(_registry(config)))

    if backup and not dry_run:
        for name in [domain] if domain else list_domains(config.data_dir):
            try:
                path = utility.create_backup(name)
            except ValueError as e:
                _fail(e)
            console.print(f"[cyan]Backup:[/cyan] {path}")

    result = utility.migrate(domain, dry_run=dry_run)

    console.print()
    console.print(f"[green]Migration complete{' (dry run)' if dry_run else ''}![/green]")
    console.print(f"  Entity sets processed: {result.total_entities}")
    console.print(f"  Entity sets enhanced: {result.migrated_entities}")
    console.print(f"  Relationships created: {result.relationships_created}")
    if result.skipped_relationships:
        console.print(f"  Relationships rejected: {result.skipped_relationships}")
    if result.errors:
        console.print(f"  [red]Errors: {len(result.errors)}[/red]")
        for error in result.errors:
            console.print(f"    - {error}")
        raise typer.Exit(1)


@app.command()
def validate(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """Validate the stored entity sets of a domain."""
    config = _load_config(data_dir, domain)

    from tidy_kg.schema import EntitySchema
    from tidy_kg.storage import load_entity_sets

    schema = EntitySchema(_registry(config))
    entity_sets = load_entity_sets(config.data_dir, config.domain)
    invalid = 0
    for entity_set in entity_sets:
        report = schema.validate_entity(entity_set)
        if report.valid:
            continue
        invalid += 1
        console.print(f"[red]✗[/red] {entity_set.id}")
        for error in report.errors:
            console.print(f"    {error}")

    console.print(f"{len(entity_sets) - invalid}/{len(entity_sets)} entity sets valid")
    if invalid:
        raise typer.Exit(1)


# ============================================================================
# Merge Commands
# ============================================================================


@app.command()
def candidates(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    limit: int = typer.Option(25, "--limit", "-n", help="Rows to show"),
    verbose: bool = VerboseOption,
) -> None:
    """Show merge candidates for a domain."""
    _setup_logging(verbose)
    service = _service(_load_config(data_dir, domain))
    found = service.get_candidates()

    if not found:
        console.print("[dim]No merge candidates found.[/dim]")
        raise typer.Exit(0)

    auto_count = sum(c.auto_mergeable for c in found)
    table = Table(
        title=f"Merge Candidates ({len(found)}, {auto_count} auto-mergeable)",
        header_style="bold cyan",
    )
    table.add_column("Primary", style="green")
    table.add_column("Secondary", style="yellow")
    table.add_column("Category")
    table.add_column("Similarity", justify="right")
    table.add_column("Auto", justify="center")
    for candidate in found[:limit]:
        table.add_row(
            f"{candidate.primary.name} [dim]({candidate.primary.id})[/dim]",
            f"{candidate.secondary.name} [dim]({candidate.secondary.id})[/dim]",
            candidate.primary.category,
            f"{candidate.similarity.overall:.0%}",
            "✓" if candidate.auto_mergeable else "",
        )
    console.print(table)


@app.command(name="auto-merge")
def auto_merge_cmd(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum merges (default from config)"),
    verbose: bool = VerboseOption,
) -> None:
    """Merge every auto-mergeable candidate (up to the limit)."""
    _setup_logging(verbose)
    service = _service(_load_config(data_dir, domain))
    result = service.auto_merge(limit)

    if not result.merges_performed:
        console.print(f"[dim]{result.message}[/dim]")
        raise typer.Exit(0)

    for pair in result.merged_pairs:
        console.print(f"  [green]✓[/green] {pair.secondary} → {pair.primary} ({pair.confidence:.0%})")
    console.print(f"[green]{result.message}[/green]")


@app.command()
def merge(
    primary_id: str = typer.Argument(..., help="First entity id (the smaller id is kept)"),
    secondary_id: str = typer.Argument(..., help="Second entity id"),
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    preview: bool = typer.Option(False, "--preview", help="Show the result without merging"),
    user: str = typer.Option("cli", "--user", help="User id recorded in the history"),
) -> None:
    """Merge two entities by id."""
    service = _service(_load_config(data_dir, domain))

    try:
        if preview:
            result = service.preview_merge(primary_id, secondary_id)
            entity = result.merged_entity
            console.print(f"[cyan]Similarity:[/cyan] {result.similarity.overall:.0%}")
            console.print(f"[cyan]Auto-mergeable:[/cyan] {'yes' if result.auto_mergeable else 'no'}")
        else:
            outcome = service.manual_merge(primary_id, secondary_id, user_id=user)
            entity = outcome.entity
            console.print(f"[green]{outcome.message}[/green]")
    except (TidyKGError, ValueError, KeyError) as e:
        _fail(e)

    console.print(f"[cyan]Result:[/cyan] {entity.name} ({entity.id})")
    console.print(f"  Merged from: {', '.join(entity.merged_from) or '-'}")
    console.print(f"  Confidence: {entity.confidence:.0%}")
    console.print(f"  Consolidated count: {entity.consolidated_count or 1}")


@app.command()
def review(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    include_auto: bool = typer.Option(False, "--all", help="Also review auto-mergeable candidates"),
    user: str = typer.Option("cli", "--user", help="User id recorded in the history"),
) -> None:
    """Interactively review merge candidates."""
    from tidy_kg.merge.reviewer import review_candidates

    service = _service(_load_config(data_dir, domain))
    found = [c for c in service.get_candidates() if include_auto or not c.auto_mergeable]
    review_candidates(
        found,
        on_merge=lambda c: service.manual_merge(c.primary.id, c.secondary.id, user_id=user),
    )


@app.command()
def history(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    merge_type: str | None = typer.Option(None, "--type", help="auto, manual or batch"),
    entity_id: str | None = typer.Option(None, "--entity", help="Only merges involving this entity"),
    page: int = typer.Option(0, "--page", help="Page number (zero-based)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Records per page"),
    time_range: str = typer.Option("all", "--range", help="Statistics range: all, today, week, month"),
) -> None:
    """Show merge history and statistics."""
    service = _service(_load_config(data_dir, domain))
    result = service.history_page(type=merge_type, entity_id=entity_id, page=page, limit=limit)
    try:
        stats = service.history.get_statistics(time_range)
    except ValueError as e:
        _fail(e)

    table = Table(
        title=f"Merge History (page {page}, {result.total} records)", header_style="bold cyan"
    )
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Merge")
    for record in result.records:
        status_style = "green" if record.status == "completed" else "yellow"
        table.add_row(
            record.id,
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
            record.type,
            f"[{status_style}]{record.status}[/{status_style}]",
            f"{record.secondary_entity.name} → {record.primary_entity.name}",
        )
    console.print(table)

    console.print(
        f"[cyan]Totals ({time_range}):[/cyan] {stats['total_merges']} merges "
        f"({stats['auto_merges']} auto, {stats['manual_merges']} manual, "
        f"{stats['batch_merges']} batch), success rate {stats['success_rate']:.0%}"
    )


@app.command()
def undo(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """Undo the most recent merge."""
    service = _service(_load_config(data_dir, domain))
    try:
        result = service.undo()
    except RestoreFailureError as e:
        _fail(e)
    if not result.success:
        console.print(f"[yellow]{result.message}[/yellow]")
        raise typer.Exit(0)
    console.print(f"[green]{result.message}[/green]")


@app.command()
def redo(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """Redo the most recently undone merge."""
    service = _service(_load_config(data_dir, domain))
    try:
        result = service.redo()
    except RestoreFailureError as e:
        _fail(e)
    if not result.success:
        console.print(f"[yellow]{result.message}[/yellow]")
        raise typer.Exit(0)
    console.print(f"[green]{result.message}[/green]")


@app.command()
def chain(
    entity_id: str = typer.Argument(..., help="Entity id"),
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """Show the merges that produced an entity, oldest first."""
    service = _service(_load_config(data_dir, domain))
    records = service.chain(entity_id)
    if not records:
        console.print(f"[dim]No completed merges produced {entity_id}.[/dim]")
        raise typer.Exit(0)

    for step, record in enumerate(records, start=1):
        console.print(
            f"  {step}. {record.timestamp:%Y-%m-%d %H:%M}  "
            f"{record.secondary_entity.name} → {record.primary_entity.name}  "
            f"[dim]({record.type}, {record.id})[/dim]"
        )


@app.command(name="export-history")
def export_history_cmd(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
    fmt: str = typer.Option("json", "--format", "-f", help="json or csv"),
    output: str | None = typer.Option(None, "-o", help="Write to file instead of stdout"),
) -> None:
    """Export the merge history as JSON or CSV."""
    service = _service(_load_config(data_dir, domain))
    try:
        text = service.history.export_history(fmt)  # type: ignore[arg-type]
    except ValueError as e:
        _fail(e)

    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]Exported {len(service.history.history)} records to {output}[/green]")
    else:
        typer.echo(text)


# ============================================================================
# Project Commands
# ============================================================================


@app.command()
def init(
    domain: str | None = typer.Option(None, help="Domain to set in project config"),
    data_dir: str | None = typer.Option(None, "--data-dir", help="Data directory to set in project config"),
) -> None:
    """Initialize a new tidy-kg project in the current directory."""
    env_example_path = Path(".env.example")
    project_path = Path(PROJECT_FILE)

    if not env_example_path.exists() or typer.confirm("Overwrite existing .env.example?", default=False):
        env_template = """# tidy-kg Configuration
# Copy this file to .env to override tidy.yaml

TIDY_DATA_DIR=data
TIDY_DOMAIN=default
# TIDY_DEDUP_CONFIG_PATH=dedup.yaml
# TIDY_AUTO_MERGE_LIMIT=10
"""
        env_example_path.write_text(env_template)
        console.print("[green]Created .env.example[/green]")

    if not project_path.exists() or typer.confirm(f"Overwrite existing {PROJECT_FILE}?", default=False):
        project_config = "# tidy-kg project config\n# All commands pick up these settings automatically.\n\n"
        project_config += f"data_dir: {data_dir}\n" if data_dir else "# data_dir: data\n"
        project_config += f"domain: {domain}\n" if domain else "# domain: default\n"
        project_config += "# dedup_config: path/to/dedup.yaml\n"
        project_config += "# catalogs: [path/to/catalog.yaml]\n"
        project_config += "# auto_merge_limit: 10\n"
        project_path.write_text(project_config)
        console.print(f"[green]Created {PROJECT_FILE}[/green]")

    console.print("\nNext steps:")
    console.print("  1. Put entity sets in <data_dir>/<domain>/entities/")
    console.print("  2. tidy migrate")
    console.print("  3. tidy candidates")
    raise typer.Exit(0)


@app.command()
def info(
    domain: str | None = DomainOption,
    data_dir: str | None = DataDirOption,
) -> None:
    """Display project configuration and data stats."""
    config = _load_config(data_dir, domain)

    from tidy_kg.storage import (
        history_path,
        list_domains,
        load_entity_sets,
        read_merged_pairs,
    )

    registry = _registry(config)
    entity_sets = load_entity_sets(config.data_dir, config.domain)

    table = Table(title="tidy-kg Project Info", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="dim")
    table.add_column("Value")

    table.add_row("Data Directory", str(config.data_dir))
    table.add_row("Domain", config.domain)
    table.add_row("Domains Found", ", ".join(list_domains(config.data_dir)) or "-")
    table.add_row(
        "Relationship Types",
        f"{len(registry.relationships_for_domain(config.domain))} in domain, {len(registry)} total",
    )
    table.add_row("Entity Sets", str(len(entity_sets)))
    table.add_row("Entities", str(sum(s.entity_count for s in entity_sets)))
    table.add_row("Relationships", str(sum(len(s.relationships) for s in entity_sets)))
    table.add_row("Merged Pairs", str(len(read_merged_pairs(config.data_dir, config.domain))))
    table.add_row(
        "Merge History",
        "present" if history_path(config.data_dir, config.domain).exists() else "none",
    )
    table.add_row("Dedup Config", str(config.dedup_config_path or "bundled"))

    console.print(table)
    raise typer.Exit(0)


if __name__ == "__main__":
    app()
