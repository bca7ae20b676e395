"""Interactive terminal review for merge candidates.

Presents candidates one-by-one with Rich panels. The user merges, skips,
or quits. Each accepted candidate is handed to a callback right away, so
quitting half way keeps the merges already made.
"""

from collections.abc import Callable

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tidy_kg.errors import TidyKGError
from tidy_kg.merge.models import MergeCandidate

console = Console()


def _read_key(prompt: str, valid: str = "msq") -> str:
    """Read a single valid key from stdin.

    Args:
        prompt: Prompt text to display
        valid: String of valid key characters

    Returns:
        The key pressed (lowercase)
    """
    console.print(prompt, end="")
    while True:
        try:
            line = input().strip().lower()
        except (EOFError, KeyboardInterrupt):
            return "q"
        if line and line[0] in valid:
            return line[0]
        console.print(f"  [dim]Press one of: {', '.join(valid)}[/dim] ", end="")


def _confidence_style(value: float) -> str:
    return "green" if value >= 0.8 else "yellow" if value >= 0.5 else "red"


def _candidate_panel(candidate: MergeCandidate, index: int, total: int) -> Panel:
    header = Text()
    header.append("Bucket: ", style="bold")
    header.append(candidate.bucket or "-")
    header.append("\nSimilarity: ", style="bold")
    style = _confidence_style(candidate.similarity.overall)
    header.append(f"{candidate.similarity.overall:.0%}", style=style)
    header.append(
        f"  (name {candidate.similarity.name:.0%}, category {candidate.similarity.category:.0%})",
        style="dim",
    )

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("", style="bold")
    table.add_column("Name", style="yellow")
    table.add_column("Category")
    table.add_column("ID", style="dim")
    table.add_column("Confidence", justify="right")
    for label, summary in (("keep", candidate.primary), ("merge", candidate.secondary)):
        conf_style = _confidence_style(summary.confidence)
        table.add_row(
            label,
            summary.name,
            summary.category,
            summary.id,
            f"[{conf_style}]{summary.confidence:.0%}[/{conf_style}]",
        )

    parts = [header, Text(""), table]
    if candidate.reasons:
        parts.append(Text(""))
        reason_text = Text()
        reason_text.append("Reasons: ", style="bold")
        reason_text.append("; ".join(candidate.reasons), style="dim")
        parts.append(reason_text)

    return Panel(
        Group(*parts),
        title=f"[bold]Candidate {index + 1}/{total}[/bold]",
        border_style="cyan",
        padding=(1, 2),
    )


def review_candidates(
    candidates: list[MergeCandidate],
    on_merge: Callable[[MergeCandidate], object],
) -> dict[str, int]:
    """Interactively review merge candidates.

    Args:
        candidates: Candidates to present, in order
        on_merge: Called with each candidate the user accepts

    Returns:
        Stats dict with counts of merged, skipped and failed
    """
    stats = {"merged": 0, "skipped": 0, "failed": 0}
    if not candidates:
        console.print("[dim]No merge candidates need review.[/dim]")
        return stats

    total = len(candidates)
    console.print()
    console.print(f"[bold cyan]Merge Candidate Review[/bold cyan]  -  {total} candidates")
    console.print("[dim]For each candidate, decide whether the two entities are the same.[/dim]")
    console.print()

    for i, candidate in enumerate(candidates):
        console.print(_candidate_panel(candidate, i, total))
        choice = _read_key(r"  \[m]erge  \[s]kip  \[q]uit → ")
        console.print()

        if choice == "m":
            try:
                on_merge(candidate)
            except (TidyKGError, ValueError) as e:
                stats["failed"] += 1
                console.print(f"  [red]✗ Merge failed:[/red] {e}")
                continue
            stats["merged"] += 1
            console.print("  [green]✓ Merged[/green]")
        elif choice == "s":
            stats["skipped"] += 1
            console.print("  [dim]⏭ Skipped[/dim]")
        elif choice == "q":
            stats["skipped"] += total - i
            console.print(f"  [dim]Quit, skipping remaining {total - i} candidates[/dim]")
            break

    console.print()
    console.print(
        f"[bold]Review complete:[/bold] {stats['merged']} merged, "
        f"{stats['skipped']} skipped, {stats['failed']} failed"
    )
    return stats
