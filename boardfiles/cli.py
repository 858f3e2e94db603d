"""Command line interface.

Usage:
    python -m boardfiles upload passport.pdf --path user/app/doc/passport.pdf
    python -m boardfiles sign documents/user/app/doc/passport.pdf
    python -m boardfiles quota
    python -m boardfiles cache ls

Remote commands read their configuration from the environment
(see ``StorageConfig``). Cache commands only need the cache directory.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError

from .client import StorageApiClient
from .config import StorageConfig, default_cache_dir
from .errors import BoardFilesError
from .storage import LocalFileStore, ObjectReference, StorageBucket

logger = logging.getLogger(__name__)

app = typer.Typer(help="Board application document storage")
cache_app = typer.Typer(help="Local file store commands")
app.add_typer(cache_app, name="cache")

CacheDirOption = typer.Option(
    None,
    "--cache-dir",
    envvar="BOARDFILES_CACHE_DIR",
    help="Local file store root.",
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Suppress per-request httpx logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load_config() -> StorageConfig:
    try:
        return StorageConfig()  # type: ignore[call-arg]  # pydantic-settings loads from env
    except ValidationError as e:
        logger.error(f"Failed to load config: {e}")
        logger.error(
            "Required environment variables: "
            "BOARDFILES_SUPABASE_URL, BOARDFILES_API_KEY, BOARDFILES_API_URL"
        )
        raise typer.Exit(1) from e


def _store(cache_dir: Path | None) -> LocalFileStore:
    return LocalFileStore(cache_dir or default_cache_dir())


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except BoardFilesError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e


@app.command()
def upload(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    path: str = typer.Option(..., "--path", help="Object path within the bucket."),
    bucket: StorageBucket = typer.Option(StorageBucket.DOCUMENTS, "--bucket"),
    upsert: bool = typer.Option(False, "--upsert", help="Overwrite an existing object."),
) -> None:
    """Upload a file to a storage bucket."""
    config = _load_config()

    async def run() -> str:
        client = StorageApiClient.from_config(config)
        try:
            result = await client.upload_object(
                bucket,
                path,
                file.read_bytes(),
                upsert=upsert,
                on_progress=lambda p: logger.debug(f"{file.name}: {p}%"),
            )
        finally:
            await client.close()
        return result.url or result.path

    typer.echo(_run(run()))


@app.command()
def sign(
    reference: str = typer.Argument(..., help="Object reference: {bucket}/{path}"),
    expires_in: int | None = typer.Option(None, "--expires-in", help="Lifetime in seconds."),
) -> None:
    """Print a download URL for an object."""
    config = _load_config()
    try:
        ref = ObjectReference.from_string(reference)
    except BoardFilesError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e

    async def run() -> str:
        client = StorageApiClient.from_config(config)
        try:
            result = await client.create_signed_url(
                ref.bucket, ref.path, expires_in or config.signed_url_ttl
            )
        finally:
            await client.close()
        return result.url

    typer.echo(_run(run()))


@app.command()
def quota(bucket: StorageBucket | None = typer.Option(None, "--bucket")) -> None:
    """Show remote storage usage for the signed-in user."""
    config = _load_config()

    async def run():
        client = StorageApiClient.from_config(config)
        try:
            return await client.get_storage_quota(bucket)
        finally:
            await client.close()

    result = _run(run())
    typer.echo(yaml.safe_dump(result.model_dump(), sort_keys=False), nl=False)


@cache_app.command("ls")
def cache_ls(cache_dir: Path | None = CacheDirOption) -> None:
    """List stored files."""
    files = asyncio.run(_store(cache_dir).get_all())
    for stored in files.values():
        category = stored.category or "-"
        typer.echo(f"{stored.id}\t{stored.size}\t{category}\t{stored.filename}")


@cache_app.command("info")
def cache_info(cache_dir: Path | None = CacheDirOption) -> None:
    """Show local store usage as YAML."""
    store = _store(cache_dir)

    async def run() -> dict:
        info = await store.storage_info()
        _, available = await store.estimate()
        report = info.model_dump()
        report["quota"] = available
        return report

    typer.echo(yaml.safe_dump(asyncio.run(run()), sort_keys=False), nl=False)


@cache_app.command("add")
def cache_add(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    file_id: str = typer.Option(..., "--id"),
    category: str | None = typer.Option(None, "--category"),
    cache_dir: Path | None = CacheDirOption,
) -> None:
    """Store a local file."""
    stored = _run(_store(cache_dir).save_path(file, file_id, category))
    typer.echo(f"{stored.id}\t{stored.size}")


@cache_app.command("rm")
def cache_rm(file_id: str, cache_dir: Path | None = CacheDirOption) -> None:
    """Delete a stored file."""
    asyncio.run(_store(cache_dir).delete(file_id))


@cache_app.command("clear")
def cache_clear(cache_dir: Path | None = CacheDirOption) -> None:
    """Delete all stored files."""
    asyncio.run(_store(cache_dir).clear())


@cache_app.command("migrate")
def cache_migrate(
    legacy_file: Path = typer.Argument(..., help="Legacy base64 JSON export."),
    clear_after: bool = typer.Option(False, "--clear-after"),
    cache_dir: Path | None = CacheDirOption,
) -> None:
    """Import files from the legacy base64 JSON format."""
    result = asyncio.run(_store(cache_dir).migrate_from_legacy(legacy_file, clear_after))
    typer.echo(yaml.safe_dump(result.model_dump(), sort_keys=False), nl=False)
    if not result.success:
        raise typer.Exit(1)
