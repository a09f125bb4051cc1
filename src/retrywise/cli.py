"""CLI interface for retrywise"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click

from retrywise.domain.models.retry_result import RetryResult
from retrywise.domain.policies import POLICY_PRESETS, RetryPolicy, delay_schedule
from retrywise.infrastructure.config.config_manager import ConfigManager, ConfigurationError
from retrywise.infrastructure.http_client import get_json

logger = logging.getLogger(__name__)

VARIANT_CHOICE = click.Choice(sorted(POLICY_PRESETS.keys()), case_sensitive=False)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config(ctx: click.Context) -> ConfigManager:
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def resolve_url(url: str, base_url: Optional[str]) -> str:
    """Join a relative probe path to the configured base URL"""
    if "://" in url or not base_url:
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def _format_policy(policy: RetryPolicy) -> str:
    return (
        f"Policy: {policy.name}\n"
        f"  max_retries: {policy.max_retries}\n"
        f"  base_delay: {policy.base_delay}s\n"
        f"  max_delay: {policy.max_delay}s\n"
        f"  backoff_factor: {policy.backoff_factor}"
    )


def _output_probe_result(url: str, result: RetryResult) -> None:
    """Output probe results to console"""
    click.echo(f"\nProbe results for: {url}\n")
    click.echo("=" * 80)
    click.echo(f"Attempts: {result.attempts}")
    if result.delays:
        click.echo("Delays: " + ", ".join(f"{d:.2f}s" for d in result.delays))
    if result.succeeded:
        click.echo("Outcome: succeeded")
    else:
        click.echo("Outcome: failed")
        click.echo(f"Failure kind: {result.failure.kind.value}")
        click.echo(f"Failure: {result.failure}", err=True)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .retrywise.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """retrywise - retry with backoff for unreliable backends"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--variant", type=VARIANT_CHOICE, default="default", show_default=True)
@click.pass_context
def schedule(ctx, variant: str):
    """Show a retry policy and the delays of a full retry sequence."""
    config_manager = _load_config(ctx)
    policy = config_manager.get_policy(variant)

    click.echo(_format_policy(policy))
    delays = delay_schedule(policy)
    if not delays:
        click.echo("No retries: the call is attempted once.")
        return
    for attempt, delay in enumerate(delays, start=1):
        click.echo(f"  after attempt {attempt}: wait {delay:.2f}s")
    click.echo(f"Total attempts: {policy.total_attempts}, total wait: {sum(delays):.2f}s")


@cli.command()
@click.argument("url", type=str)
@click.option("--variant", type=VARIANT_CHOICE, default="default", show_default=True)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Per-attempt timeout in seconds. Overrides config.",
)
@click.pass_context
def probe(ctx, url: str, variant: str, timeout: Optional[float]):
    """GET a JSON endpoint through the retry executor.

    URL: Absolute URL, or a path joined to http.base_url
    """
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config(ctx)
    http_config = config_manager.get_http_config()
    policy = config_manager.get_policy(variant)
    target = resolve_url(url, http_config.base_url)

    logger.info(f"Probing {target} with {policy.name} policy")
    try:
        result = asyncio.run(
            get_json(
                target,
                headers=http_config.headers,
                timeout=timeout if timeout is not None else http_config.timeout,
                policy=policy,
            )
        )
    except Exception as e:
        _die(f"Fatal error: {e}", verbose=verbose, exc=e)

    _output_probe_result(target, result)
    if not result.succeeded:
        ctx.exit(1)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
