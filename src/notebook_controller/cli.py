"""Notebook operator CLI (nbctl).

Usage:
    nbctl create notebook.yaml    # Create an instance and wait for InService
    nbctl read nb-1               # Show the observed state
    nbctl update notebook.yaml    # Apply changes (stop/restart when needed)
    nbctl delete nb-1             # Stop, delete and wait until gone
    nbctl apply notebook.yaml     # Create, update or replace as needed

Connection settings come from the environment, see Config.from_env().
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click

from .arm_client import ArmNotebookClient
from .config import Config, ConfigurationError
from .lifecycle import LifecycleOrchestrator, OperationError
from .logging_config import setup_logging
from .models import LifecycleStatus, NotebookSpec
from .poller import StatusPoller
from .reconciler import NotebookReconciler
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_spec
from .tags import TagSynchronizer

SECURITY_VIOLATION_EXIT_CODE = 2


class SecurityViolationException(click.ClickException):
    """Credential secrets found in the environment."""

    exit_code = SECURITY_VIOLATION_EXIT_CODE


@dataclass
class CliState:
    """Objects shared by all commands of one invocation."""

    cancel: threading.Event = field(default_factory=threading.Event)
    orchestrator: LifecycleOrchestrator | None = None


def build_orchestrator(config: Config) -> LifecycleOrchestrator:
    """Wire the ARM client, poller, reconciler and tag sync together."""
    client = ArmNotebookClient.from_config(config)
    poller = StatusPoller(client, interval_seconds=config.poll_interval_seconds)
    reconciler = NotebookReconciler(client, poller, timeout_seconds=config.wait_timeout_seconds)
    return LifecycleOrchestrator(client, reconciler, TagSynchronizer(client))


def get_orchestrator(state: CliState) -> LifecycleOrchestrator:
    if state.orchestrator is None:
        try:
            state.orchestrator = build_orchestrator(Config.from_env())
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e
        except SecretlessViolationError as e:
            raise SecurityViolationException(str(e)) from e
    return state.orchestrator


def read_spec(spec_file: Path) -> NotebookSpec:
    try:
        return load_spec(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Notebook operator - reconcile notebook instances on Azure."""
    setup_logging(verbose=verbose)
    ctx.ensure_object(CliState)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def create(state: CliState, spec_file: Path) -> None:
    """Create the notebook instance described by SPEC_FILE."""
    spec = read_spec(spec_file)
    try:
        observed = get_orchestrator(state).create(spec, cancel=state.cancel)
    except OperationError as e:
        raise click.ClickException(str(e)) from e
    echo_json(observed.to_dict())


@cli.command()
@click.argument("name")
@click.pass_obj
def read(state: CliState, name: str) -> None:
    """Show the observed state of notebook instance NAME."""
    try:
        observed = get_orchestrator(state).read(name)
    except OperationError as e:
        raise click.ClickException(str(e)) from e

    if observed is None:
        echo_json({"name": name, "status": LifecycleStatus.ABSENT.value})
        return
    echo_json(observed.to_dict())


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def update(state: CliState, spec_file: Path) -> None:
    """Update an existing notebook instance to match SPEC_FILE."""
    spec = read_spec(spec_file)
    try:
        observed = get_orchestrator(state).update(spec, cancel=state.cancel)
    except OperationError as e:
        raise click.ClickException(str(e)) from e
    echo_json(observed.to_dict())


@cli.command()
@click.argument("name")
@click.pass_obj
def delete(state: CliState, name: str) -> None:
    """Stop and delete notebook instance NAME."""
    try:
        get_orchestrator(state).delete(name, cancel=state.cancel)
    except OperationError as e:
        raise click.ClickException(str(e)) from e
    echo_json({"name": name, "status": LifecycleStatus.ABSENT.value})


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def apply(state: CliState, spec_file: Path) -> None:
    """Create, update or replace the instance so it matches SPEC_FILE."""
    spec = read_spec(spec_file)
    try:
        observed = get_orchestrator(state).apply(spec, cancel=state.cancel)
    except OperationError as e:
        raise click.ClickException(str(e)) from e
    echo_json(observed.to_dict())
