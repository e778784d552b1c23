"""Click commands for running and inspecting the controller."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import click

from pager import __version__
from pager.config import load_config
from pager.models.config import PagerConfig
from pager.observability.logging import LOG_FORMATS

_LOG_LEVELS = ["debug", "info", "warning", "error"]


def _resolve_config(
    apiserver: str | None,
    namespace: str | None,
    workers: int | None,
    log_level: str | None,
    log_format: str | None,
) -> PagerConfig:
    """Load PAGER_* settings, then apply command-line overrides."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if apiserver is not None:
        config.kube.apiserver = apiserver
    if namespace is not None:
        config.informer.namespace = namespace
    if workers is not None:
        config.controller.workers = workers
    if log_level is not None:
        config.log.level = log_level.lower()
    if log_format is not None:
        config.log.format = log_format.lower()
    return config


def _override_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the flags that override PAGER_* settings."""
    options = [
        click.option(
            "--apiserver",
            default=None,
            help="URL used to access the Kubernetes API server. Empty uses in-cluster config or kubeconfig.",
        ),
        click.option("--namespace", default=None, help="Only watch this namespace."),
        click.option("--workers", type=click.IntRange(1, 64), default=None, help="Number of reconcile workers."),
        click.option("--log-level", type=click.Choice(_LOG_LEVELS, case_sensitive=False), default=None),
        click.option("--log-format", type=click.Choice(LOG_FORMATS, case_sensitive=False), default=None),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


@click.group()
@click.version_option(__version__, prog_name="pager")
def cli() -> None:
    """Level-triggered controller for pager.k8s.co Alert resources."""


@cli.command()
@_override_options
def run(
    apiserver: str | None,
    namespace: str | None,
    workers: int | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Run the controller until SIGTERM or SIGINT."""
    from pager.app import main

    config = _resolve_config(apiserver, namespace, workers, log_level, log_format)
    asyncio.run(main(config))


@cli.command("config")
@_override_options
def show_config(
    apiserver: str | None,
    namespace: str | None,
    workers: int | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Print the effective configuration as JSON."""
    config = _resolve_config(apiserver, namespace, workers, log_level, log_format)
    click.echo(json.dumps(asdict(config), indent=2, sort_keys=True))
