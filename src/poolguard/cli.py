"""poolguard CLI.

Usage:
    poolguard validate pool.yaml
    poolguard preflight pool.yaml --control-plane KubeadmControlPlane/cp1 -n ns1
    poolguard hooks pool.yaml --group my-asg --ignore nth-termination --dry-run
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from .autoscaling import AutoScalingHookStore
from .conditions import LIFECYCLE_HOOK_READY, ConditionSet
from .config import Config, ConfigurationError
from .control_plane import (
    DEFAULT_CONTROL_PLANE_API_VERSION,
    ControlPlaneError,
    ControlPlaneRef,
    KubectlControlPlaneSource,
)
from .ignore_rules import HookIgnoreList, IgnoreRulesError
from .lifecycle_hooks import HookAction, HookStoreError, LifecycleHookReconciler
from .main import setup_logging
from .models import MachinePoolSpec
from .preflight import PreflightError, PreflightGate
from .spec_loader import SpecLoadError, load_machine_pool_spec

# Exit code when the preflight gate says "not yet"
EXIT_NOT_READY = 3

SPEC_FILE = click.Path(exists=False, dir_okay=False, path_type=Path)


def _load_spec(spec_file: Path) -> MachinePoolSpec:
    try:
        return load_machine_pool_spec(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Machine pool preflight checks and lifecycle hook reconciliation."""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    setup_logging((log_level or config.log_level).upper())
    ctx.obj = config


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
def validate(spec_file: Path) -> None:
    """Admission-validate a machine pool spec."""
    spec = _load_spec(spec_file)
    click.echo(
        f"{spec_file}: valid ({len(spec.lifecycle_hooks)} lifecycle hooks)"
    )


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option(
    "--control-plane",
    "control_plane",
    default=None,
    help="Control plane reference as KIND/NAME. Omit for clusters without one.",
)
@click.option("--namespace", "-n", default="default", show_default=True)
@click.option(
    "--api-version",
    default=DEFAULT_CONTROL_PLANE_API_VERSION,
    show_default=True,
    help="apiVersion of the control plane object.",
)
@click.pass_obj
def preflight(
    config: Config,
    spec_file: Path,
    control_plane: str | None,
    namespace: str,
    api_version: str,
) -> None:
    """Check whether the pool's launch template may be rolled out now.

    Exits 0 when safe, 3 when the rollout should wait.
    """
    spec = _load_spec(spec_file)

    try:
        ref = (
            ControlPlaneRef.parse(control_plane, namespace=namespace, api_version=api_version)
            if control_plane
            else None
        )
        gate = PreflightGate(
            config,
            KubectlControlPlaneSource(
                context=config.kubectl_context,
                timeout_seconds=config.kubectl_timeout_seconds,
            ),
        )
        safe = gate.check(ref, spec.to_preflight_request())
    except (ControlPlaneError, PreflightError) as e:
        raise click.ClickException(str(e)) from e

    if safe:
        click.echo("preflight checks passed")
        return

    click.echo("preflight checks not passed, rollout should wait")
    sys.exit(EXIT_NOT_READY)


@cli.command()
@click.argument("spec_file", type=SPEC_FILE)
@click.option("--group", "group_name", required=True, help="Auto Scaling Group name.")
@click.option(
    "--ignore",
    "ignore",
    multiple=True,
    help="Hook name to leave untouched. Repeatable; merged with IGNORE_LIFECYCLE_HOOKS.",
)
@click.option("--dry-run", is_flag=True, help="Print the plan without changing anything.")
@click.pass_obj
def hooks(
    config: Config,
    spec_file: Path,
    group_name: str,
    ignore: tuple[str, ...],
    dry_run: bool,
) -> None:
    """Reconcile the lifecycle hooks of an Auto Scaling Group."""
    spec = _load_spec(spec_file)

    try:
        ignore_list = HookIgnoreList.from_env().merged(ignore)
    except IgnoreRulesError as e:
        raise click.ClickException(str(e)) from e

    conditions = ConditionSet()
    reconciler = LifecycleHookReconciler(
        AutoScalingHookStore(region_name=config.aws_region),
        conditions,
    )

    try:
        if dry_run:
            for change in reconciler.plan(group_name, spec.lifecycle_hooks, ignore_list):
                if change.action != HookAction.NO_CHANGE:
                    click.echo(f"{change.action.value}\t{change.hook_name}")
            return

        result = reconciler.reconcile(group_name, spec.lifecycle_hooks, ignore_list)
    except (HookStoreError, ValueError) as e:
        condition = conditions.get(LIFECYCLE_HOOK_READY)
        if condition is not None:
            click.echo(json.dumps(condition.to_dict()), err=True)
        raise click.ClickException(str(e)) from e

    click.echo(
        f"created={len(result.created)} updated={len(result.updated)} "
        f"deleted={len(result.deleted)} unchanged={len(result.unchanged)} "
        f"ignored={len(result.ignored)}"
    )
