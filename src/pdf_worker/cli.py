"""
PDF Worker CLI - Command-line interface.

Serve the API, assemble documents locally and inspect PDFs from the
terminal.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pdf_worker.assembly import (
    Multiple,
    OutputMode,
    PageInstructionCompiler,
    Single,
    SourceDocumentCache,
    SourceLoadFailure,
    build_plan,
    load_pdf,
)
from pdf_worker.assembly.packager import build_archive, serialize
from pdf_worker.config import WorkerSettings
from pdf_worker.core.exceptions import ConfigurationError, PdfWorkerError
from pdf_worker.version import __version__

app = typer.Typer(
    name="pdf-worker",
    help="PDF Worker - page assembly and ephemeral downloads for PDF documents",
    no_args_is_help=True,
)
console = Console()


def _read_instructions(value: str) -> str:
    """Return instruction JSON given inline or as ``@path``."""
    if value.startswith("@"):
        path = Path(value[1:])
        if not path.is_file():
            console.print(f"[red]Instructions file not found: {path}[/red]")
            raise typer.Exit(1)
        return path.read_text(encoding="utf-8")
    return value


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(4000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    try:
        WorkerSettings.from_env().validate()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold blue]PDF Worker v{__version__}[/bold blue] on http://{host}:{port}")
    uvicorn.run(
        "pdf_worker.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def assemble(
    sources: list[Path] = typer.Argument(..., help="Source PDFs; the first is fileIndex 0"),
    instructions: str = typer.Option(
        ..., "--instructions", "-i", help="Instruction JSON, or @path to a JSON file"
    ),
    mode: OutputMode = typer.Option(OutputMode.MERGE, "--mode", "-m", help="merge or separate"),
    output: Path = typer.Option(Path("assembled.pdf"), "--output", "-o", help="Output path"),
    max_pages: int = typer.Option(500, "--max-pages", help="Maximum total pages"),
):
    """
    Assemble a document from page instructions without the server.

    Separate mode writes a zip archive next to the requested output name.
    """
    missing = [str(path) for path in sources if not path.is_file()]
    if missing:
        console.print(f"[red]Source not found: {', '.join(missing)}[/red]")
        raise typer.Exit(1)

    buffers = {index: path.read_bytes() for index, path in enumerate(sources)}
    compiler = PageInstructionCompiler(max_total_pages=max_pages)

    try:
        plan = build_plan(_read_instructions(instructions), mode)
        with SourceDocumentCache(buffers) as cache:
            bundle = compiler.compile(plan, cache, stem=output.stem or "page")
            match bundle:
                case Single(document=document):
                    content = serialize(document.writer)
                case Multiple(documents=documents):
                    content = build_archive(documents)
                    output = output.with_suffix(".zip")
    except PdfWorkerError as e:
        console.print(f"[red]{e.code}:[/red] {e}")
        raise typer.Exit(1)

    output.write_bytes(content)
    pages = sum(document.page_count for document in bundle.documents)
    console.print(
        f"[green]Wrote[/green] {output} "
        f"({len(bundle.documents)} document(s), {pages} page(s), {len(content):,} bytes)"
    )


@app.command()
def inspect(
    pdf: Path = typer.Argument(..., help="PDF file to inspect"),
):
    """Show the pages of a PDF with their size and rotation."""
    if not pdf.is_file():
        console.print(f"[red]File not found: {pdf}[/red]")
        raise typer.Exit(1)

    try:
        reader = load_pdf(pdf.read_bytes())
    except SourceLoadFailure as e:
        console.print(f"[red]{e.reason}:[/red] {e.message}")
        raise typer.Exit(1)

    table = Table(title=f"{pdf.name} ({len(reader.pages)} pages)")
    table.add_column("Index", style="cyan", justify="right")
    table.add_column("Width", justify="right")
    table.add_column("Height", justify="right")
    table.add_column("Rotation", style="magenta", justify="right")

    for index, page in enumerate(reader.pages):
        box = page.mediabox
        table.add_row(
            str(index),
            f"{float(box.width):.2f}",
            f"{float(box.height):.2f}",
            str(page.rotation),
        )

    console.print(table)


@app.command("config")
def config_cmd():
    """Print the effective settings read from PW_* variables."""
    settings = WorkerSettings.from_env()

    table = Table(title="Effective Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.as_dict().items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)

    try:
        settings.validate()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"PDF Worker v{__version__}")


if __name__ == "__main__":
    app()
