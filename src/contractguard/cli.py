"""
Command-line interface for ContractGuard.
"""

import asyncio
import json
import signal
from pathlib import Path
from typing import Optional
from uuid import UUID

import click
import structlog

from contractguard.config import get_settings
from contractguard.container import ServiceContainer
from contractguard.logging_config import configure_logging
from contractguard.models.contract import ContractType, FileType

logger = structlog.get_logger(__name__)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """ContractGuard: contract risk analysis and semantic search."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    settings = get_settings()
    configure_logging("DEBUG" if debug else settings.log_level, settings.json_logs)


# =========================================================================
# Server Commands
# =========================================================================


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
def serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting ContractGuard API server on {host}:{port}")

    uvicorn.run(
        "contractguard.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@cli.command()
@click.option(
    "--queue",
    "queue_name",
    type=click.Choice(["analysis", "embedding", "all"]),
    default="all",
    help="Which queue to consume",
)
def worker(queue_name: str) -> None:
    """Run background workers until interrupted."""
    from contractguard.workers.analysis_worker import build_analysis_worker
    from contractguard.workers.embedding_worker import build_embedding_worker

    async def run_workers() -> None:
        settings = get_settings()
        container = ServiceContainer.from_settings(settings)
        workers = []
        if queue_name in ("analysis", "all"):
            workers.append(
                build_analysis_worker(container.analysis_queue, container.pipeline, settings)
            )
        if queue_name in ("embedding", "all"):
            workers.append(
                build_embedding_worker(
                    container.embedding_queue, container.embedding_processor, settings
                )
            )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: [w.stop() for w in workers])

        click.echo(f"Starting {len(workers)} worker(s) for queue: {queue_name}")
        try:
            await asyncio.gather(*(w.run() for w in workers))
        finally:
            await container.aclose()

    asyncio.run(run_workers())


# =========================================================================
# Database Commands
# =========================================================================


@cli.command("init-db")
def init_db() -> None:
    """Create tables, indexes and the pgvector extension."""
    from contractguard.storage.postgres import PostgresAdapter

    async def run_init() -> None:
        db = PostgresAdapter(get_settings().postgres_url)
        try:
            await db.create_schema()
        finally:
            await db.close()

    asyncio.run(run_init())
    click.echo("Database schema ready")


# =========================================================================
# Analysis Commands
# =========================================================================


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--type",
    "contract_type",
    type=click.Choice([t.value for t in ContractType]),
    default=ContractType.OTHER.value,
    help="Contract type; detected automatically when Other",
)
@click.option("--output", "-o", type=click.Path(), help="Write the JSON result to a file")
def analyze(file_path: str, contract_type: str, output: Optional[str]) -> None:
    """Analyze a local PDF or DOCX without persisting anything."""
    path = Path(file_path)
    try:
        file_type = FileType(path.suffix.lower().lstrip("."))
    except ValueError:
        raise click.BadParameter("Only .pdf and .docx files are supported", param_hint="FILE_PATH")

    async def run_analysis() -> dict:
        settings = get_settings()
        container = ServiceContainer.from_settings(settings)
        try:
            extraction = await asyncio.to_thread(
                container.pipeline.extractor.extract, path.read_bytes(), file_type
            )
            if extraction.word_count < settings.min_word_count:
                raise click.ClickException(
                    f"Too little text extracted ({extraction.word_count} words)"
                )
            chunks = container.chunker.chunk(extraction.text)
            analysis = await container.pipeline.analyze_text(
                extraction.text, ContractType(contract_type)
            )
        finally:
            await container.aclose()

        result = analysis.to_dict()
        result["file"] = path.name
        result["word_count"] = extraction.word_count
        result["page_count"] = extraction.page_count
        result["chunk_count"] = len(chunks)
        return result

    result = asyncio.run(run_analysis())
    rendered = json.dumps(result, indent=2, default=str)

    if output:
        Path(output).write_text(rendered)
        click.echo(f"Results saved to {output}")
    else:
        click.echo(rendered)


@cli.command()
@click.argument("query")
@click.option("--tenant", "tenant_id", required=True, type=click.UUID, help="Tenant ID")
@click.option("--limit", "-k", default=None, type=int, help="Maximum results")
@click.option("--min-score", default=None, type=float, help="Minimum similarity score")
def search(query: str, tenant_id: UUID, limit: Optional[int], min_score: Optional[float]) -> None:
    """Semantic search over a tenant's analyzed contracts."""
    from contractguard.models.api import SearchRequest

    async def run_search():
        container = ServiceContainer.from_settings(get_settings())
        try:
            return await container.retrieval.search(
                tenant_id,
                SearchRequest(query=query, limit=limit, min_score=min_score),
            )
        finally:
            await container.aclose()

    response = asyncio.run(run_search())

    click.echo(f"{response.total_results} result(s){' (cached)' if response.cached else ''}")
    for i, result in enumerate(response.results, 1):
        click.echo(
            f"\n{i}. {result.contract_name or result.document_id} "
            f"[{result.relevance_label.value}, {result.similarity_score:.3f}]"
        )
        click.echo(f"   {result.chunk_text[:200]}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
