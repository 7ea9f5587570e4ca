"""
variantctl: CLI entrypoint.

Usage:
    python -m variantctl.main --help
    variantctl install [PATH] [--variant ID] [--force]
    variantctl upgrade [PATH] [--variant ID] [--force]
    variantctl detect [PATH]
    variantctl doctor [PATH]
    variantctl log [PATH]
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from variantctl import __version__
from variantctl.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="variantctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to variantctl.yml (default: auto-detect from the target upward).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """variantctl: install the right harness variant for this environment."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))


# ── Shared options ──────────────────────────────────────────────


def _target_argument(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.argument(
        "path",
        type=click.Path(file_okay=False, path_type=Path),
        default=".",
    )(func)


def _runtime_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--runtime-version",
        default=None,
        help="Use this Node.js version instead of probing `node --version`.",
    )(func)


def _operation_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by install and upgrade."""
    for decorator in reversed([
        _target_argument,
        click.option("--variant", default=None, help="Install this variant instead of auto-selecting."),
        click.option("--force", is_flag=True, help="Reinstall even if installed / unchanged."),
        click.option("--skip-deps", is_flag=True, help="Do not ask for a dependency install afterwards."),
        click.option(
            "--artifacts-dir",
            type=click.Path(file_okay=False, path_type=Path),
            default=None,
            help="Directory holding the built variants (default: settings, then ./core).",
        ),
        _runtime_option,
        click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."),
    ]):
        func = decorator(func)
    return func


def _load_settings_or_exit(ctx: click.Context, target: Path, as_json: bool):
    from variantctl.core.config.loader import load_settings
    from variantctl.core.errors import ConfigError

    try:
        return load_settings(target, ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({
                "success": False, "error": e.message,
                "error_kind": str(e.kind), "remediation": e.remediation,
            }, indent=2))
        else:
            click.secho(f"❌ {e.message}", fg="red")
            if e.remediation:
                click.echo(f"   → {e.remediation}")
        sys.exit(1)


def _runtime(settings, runtime_version: str | None):
    from variantctl.adapters.languages.node import NodeRuntime

    return NodeRuntime(pinned=runtime_version or settings.runtime_version)


def _run_operation(
    ctx: click.Context,
    operation: str,
    path: Path,
    variant: str | None,
    force: bool,
    skip_deps: bool,
    artifacts_dir: Path | None,
    runtime_version: str | None,
    as_json: bool,
) -> None:
    from variantctl.core.config.loader import resolve_artifacts_dir
    from variantctl.core.services.installer import InstallOptions
    from variantctl.core.use_cases.install import run_install
    from variantctl.core.use_cases.upgrade import run_upgrade

    settings = _load_settings_or_exit(ctx, path, as_json)
    options = InstallOptions(
        variant=variant,
        force=force,
        skip_deps=skip_deps,
        artifacts_dir=resolve_artifacts_dir(settings, explicit=artifacts_dir),
        runtime=_runtime(settings, runtime_version),
        install_method=settings.install_method,
        preserve=list(settings.preserve),
        log_max_bytes=settings.log_max_bytes,
    )

    runner = run_install if operation == "install" else run_upgrade
    result = runner(path, options)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.success else 1)

    quiet = ctx.obj.get("quiet", False)
    if result.success:
        if not result.changed:
            click.secho(f"✅ {result.variant} is already installed, no change", fg="green")
        elif operation == "upgrade":
            click.secho(
                f"✅ Upgraded {result.previous_variant} → {result.variant} "
                f"({result.files} files)",
                fg="green", bold=True,
            )
        else:
            click.secho(f"✅ Installed {result.variant} ({result.files} files)", fg="green", bold=True)
    else:
        click.secho(f"❌ [{result.error_kind}] {result.error}", fg="red")
        if result.remediation:
            for line in result.remediation.split("\n"):
                click.echo(f"   → {line}" if not line.startswith("  ") else f"   {line}")

    if result.rollback is not None and not quiet:
        rb = result.rollback
        click.echo(
            f"   Rollback: {len(rb.removed)} removed, {len(rb.restored)} restored, "
            f"{len(rb.failed)} failed"
        )

    if result.warnings and not quiet:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.success:
        sys.exit(1)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@_operation_options
@click.pass_context
def install(ctx: click.Context, **kwargs: Any) -> None:
    """Install the variant that fits this environment.

    Examples:

        variantctl install

        variantctl install ./my-project --variant legacy-16

        variantctl install --force --skip-deps
    """
    _run_operation(ctx, "install", **kwargs)


@cli.command()
@_operation_options
@click.pass_context
def upgrade(ctx: click.Context, **kwargs: Any) -> None:
    """Switch an existing installation to the variant the environment needs."""
    _run_operation(ctx, "upgrade", **kwargs)


@cli.command()
@_target_argument
@click.option("--variant", default=None, help="Check this variant override.")
@_runtime_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def detect(
    ctx: click.Context,
    path: Path,
    variant: str | None,
    runtime_version: str | None,
    as_json: bool,
) -> None:
    """Show the detected environment and the variant install would pick."""
    from variantctl.core.use_cases.detect import run_detect

    settings = _load_settings_or_exit(ctx, path, as_json)
    report = run_detect(path, variant=variant, runtime=_runtime(settings, runtime_version))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.success else 1)

    if report.error:
        click.secho(f"❌ {report.error}", fg="red")
        sys.exit(1)

    detection = report.detection
    assert detection is not None

    click.secho(f"\n🔍 Detection: {report.target}", fg="cyan", bold=True)
    click.echo(f"   Node.js:    {detection.runtime_version_full or 'not found'}")
    click.echo(f"   Modules:    {detection.module_convention or '?'}")
    if detection.manifest_path:
        click.echo(f"   Manifest:   {detection.manifest_path}")
    if detection.success:
        label = " (override)" if detection.override_used else ""
        click.secho(f"   Variant:    {detection.selected_variant}{label}", fg="green")
    else:
        click.secho(f"   ✗ [{detection.error_kind}] {detection.error}", fg="red")
        if detection.remediation:
            click.echo(f"     → {detection.remediation}")

    if report.installed:
        click.echo(f"   Installed:  {report.installed.variant} ({report.installed.installed_at})")
    if report.change and report.change.changed:
        click.secho(f"   ⚠️  Environment changed: {report.change.reason}", fg="yellow")

    for warn in detection.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")
    click.echo()

    if not report.success:
        sys.exit(1)


@cli.command()
@_target_argument
@_runtime_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def doctor(ctx: click.Context, path: Path, runtime_version: str | None, as_json: bool) -> None:
    """Diagnose an installation and suggest fixes."""
    from variantctl.core.use_cases.doctor import run_doctor

    settings = _load_settings_or_exit(ctx, path, as_json)
    diagnosis = run_doctor(path, runtime=_runtime(settings, runtime_version))

    if as_json:
        click.echo(json.dumps(diagnosis.to_dict(), indent=2))
        sys.exit(0 if diagnosis.healthy else 1)

    status_icons = {
        "healthy": ("💚", "green"),
        "degraded": ("🟡", "yellow"),
        "unhealthy": ("🔴", "red"),
    }
    check_icons = {"pass": ("✓", "green"), "warn": ("⚠", "yellow"), "fail": ("✗", "red")}
    icon, color = status_icons.get(diagnosis.status, ("❔", "white"))

    click.echo()
    click.secho(f"{icon} {diagnosis.target}: {diagnosis.status.upper()}", fg=color, bold=True)
    click.echo()
    for check in diagnosis.checks:
        c_icon, c_color = check_icons[check.status]
        click.secho(f"   {c_icon} {check.name:<22}", fg=c_color, nl=False)
        click.echo(check.message)
        if ctx.obj.get("verbose") and check.details:
            for key, val in check.details.items():
                click.echo(f"        {key}: {val}")

    if diagnosis.recommendations:
        click.echo()
        click.secho("   Recommendations:", fg="white", bold=True)
        for rec in diagnosis.recommendations:
            click.echo(f"     • {rec}")
    click.echo()

    if not diagnosis.healthy:
        sys.exit(1)


@cli.command("log")
@_target_argument
@click.option("-n", "--lines", "count", default=20, show_default=True, help="Entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def show_log(path: Path, count: int, as_json: bool) -> None:
    """Show recent install log entries."""
    from variantctl.core.workspace import Workspace

    ws = Workspace(path)
    entries = ws.log.read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json", exclude_none=True) for e in entries], indent=2))
        return

    if not entries:
        click.echo(f"No install log entries in {ws.log.path}")
        return

    level_colors = {"info": "white", "warn": "yellow", "error": "red"}
    for entry in entries:
        click.secho(f"{entry.timestamp}  {entry.level:<5} ", fg=level_colors[entry.level], nl=False)
        click.echo(f"[{entry.operation}] {entry.message}")


if __name__ == "__main__":
    cli()
