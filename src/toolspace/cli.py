#!/usr/bin/env python3
"""Command line access to the tool catalog.

Useful for checking an upstream deployment by hand: page through the
discovery listing, call a tool through the dispatcher, or print loader
metrics after preloading.
"""

import asyncio
import json
import logging
import sys
from typing import Any

import click
from dotenv import load_dotenv

from toolspace.catalog.exceptions import CatalogError
from toolspace.catalog.server import CatalogServer
from toolspace.config import CatalogConfig


def setup_logger(log_level: str = "INFO") -> logging.Logger:
    """Configure stderr logging for the CLI and return the package logger."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logger = logging.getLogger("toolspace")
    logger.setLevel(level)
    return logger


def _load_config(upstream_url: str | None, token: str | None) -> CatalogConfig:
    load_dotenv()
    try:
        return CatalogConfig.from_env(upstream_url=upstream_url, credential=token)
    except ValueError as exc:
        click.echo(f"Error: invalid configuration: {exc}", err=True)
        sys.exit(1)


async def _list(config: CatalogConfig, all_pages: bool) -> list[dict[str, Any]]:
    async with CatalogServer(config) as server:
        tools: list[dict[str, Any]] = []
        cursor = None
        while True:
            page = await server.list_tools(cursor)
            tools.extend({"name": t.name, "description": t.description} for t in page.tools)
            cursor = page.nextCursor
            if not all_pages or cursor is None:
                return tools


async def _call(config: CatalogConfig, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    async with CatalogServer(config) as server:
        result = await server.dispatcher.dispatch(name, arguments)
        return result.to_dict()


async def _stats(config: CatalogConfig) -> dict[str, Any]:
    async with CatalogServer(config) as server:
        await server.loader.wait_until_initialized()
        return server.get_metrics()


@click.group()
@click.option("--upstream-url", envvar="TOOLSPACE_UPSTREAM_URL", help="Base URL of the catalog backend")
@click.option("--token", envvar="TOOLSPACE_CREDENTIAL", help="Default bearer credential")
@click.option(
    "--log-level",
    "-l",
    default="WARNING",
    show_default=True,
    help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.pass_context
def main(ctx: click.Context, upstream_url: str | None, token: str | None, log_level: str) -> None:
    """Inspect and exercise a namespace-partitioned tool catalog."""
    setup_logger(log_level)
    ctx.obj = _load_config(upstream_url, token)


@main.command("list")
@click.option("--all", "all_pages", is_flag=True, help="Follow cursors until the last page")
@click.pass_obj
def list_command(config: CatalogConfig, all_pages: bool) -> None:
    """Print the discovery listing as JSON."""
    tools = asyncio.run(_list(config, all_pages))
    click.echo(json.dumps(tools, indent=2, ensure_ascii=False))


@main.command("call")
@click.argument("name")
@click.option("--args", "args_json", default="{}", show_default=True, help="Tool arguments as a JSON object")
@click.pass_obj
def call_command(config: CatalogConfig, name: str, args_json: str) -> None:
    """Dispatch NAME with the given arguments and print the normalized result."""
    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as exc:
        click.echo(f"Error: --args is not valid JSON: {exc}", err=True)
        sys.exit(1)
    if not isinstance(arguments, dict):
        click.echo("Error: --args must be a JSON object", err=True)
        sys.exit(1)

    try:
        result = asyncio.run(_call(config, name, arguments))
    except CatalogError as exc:
        suggestion = getattr(exc, "suggestion", None)
        click.echo(f"Error: {exc}", err=True)
        if suggestion:
            click.echo(f"Suggestion: {suggestion}", err=True)
        sys.exit(2)
    click.echo(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    if result["is_error"]:
        sys.exit(1)


@main.command("stats")
@click.pass_obj
def stats_command(config: CatalogConfig) -> None:
    """Preload priority namespaces and print loader metrics."""
    click.echo(json.dumps(asyncio.run(_stats(config)), indent=2))


if __name__ == "__main__":
    main()
