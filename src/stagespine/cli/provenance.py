"""
CLI: ``stagespine provenance`` -- load a mapping file and query it.
"""

from __future__ import annotations

from pathlib import Path

import typer

from stagespine.cli.utils import cli_errors, console, output_data
from stagespine.core.settings import get_settings
from stagespine.provenance.index import ProvenanceIndex
from stagespine.provenance.mapping import MappingArtifact

app = typer.Typer(no_args_is_help=True)


def _load_index(mapping_file: Path, source: str, generated: str | None) -> tuple[ProvenanceIndex, str, str]:
    generated_uri = generated or source + get_settings().generated_suffix
    index = ProvenanceIndex()
    index.add_overlay_mapping(source, generated_uri, MappingArtifact.from_json_file(mapping_file))
    return index, index.get_generated_uri(source) or generated_uri, source


@app.command("stats")
def provenance_stats(
    mapping_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Mapping JSON file."),
    source: str = typer.Option(..., "--source", "-s", help="Source document URI."),
    generated: str | None = typer.Option(None, "--generated", "-g", help="Generated document URI."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show edge counts for a mapping."""
    with cli_errors():
        index, _, _ = _load_index(mapping_file, source, generated)
        stats = index.document_stats(source)
    if json_out:
        output_data({"document": stats.to_dict(), "global": index.stats().to_dict()}, as_json=True)
        return
    output_data(stats, title="Provenance")


@app.command("lookup")
def provenance_lookup(
    mapping_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Mapping JSON file."),
    offset: int = typer.Option(..., "--offset", "-o", min=0, help="Offset to look up."),
    source: str = typer.Option("file:///source", "--source", "-s", help="Source document URI."),
    generated: str | None = typer.Option(None, "--generated", "-g", help="Generated document URI."),
    source_side: bool = typer.Option(False, "--source-side", help="Treat the offset as a source offset."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Project an offset across the mapping."""
    with cli_errors():
        index, generated_uri, source_uri = _load_index(mapping_file, source, generated)
        if source_side:
            hit = index.project_source_offset(source_uri, offset)
        else:
            hit = index.project_generated_offset(generated_uri, offset)

    if hit is None:
        console.print(f"[yellow]No mapping at offset {offset}[/yellow]")
        raise typer.Exit(code=1)

    result = {
        "uri": hit.uri,
        "start": hit.span.start,
        "end": hit.span.end,
        "kind": hit.edge.kind.value,
        "expr_id": hit.expr_id,
        "member_path": hit.member_path,
        "evidence": hit.evidence.level,
    }
    output_data(result, as_json=json_out, title="Projection")
