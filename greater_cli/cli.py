"""Greater CLI for installing greater-components into a project.

Provides commands to initialize a project, add and update registry
components, and inspect the local cache and audit log.
"""

import asyncio
import functools
import sys
from pathlib import Path

import click

from greater_library.config import ComponentConfig
from greater_library.config import save_component_config
from greater_library.config.components import get_component_config_path
from greater_library.errors import GreaterError
from greater_library.errors import NetworkError
from greater_library.install import InstallReport
from greater_library.install import InstalledStateStore
from greater_library.install import format_diff_stats
from greater_library.install import run_doctor
from greater_library.registry import get_all_component_names
from greater_library.resolver import resolve
from greater_library.security import AuditLog
from greater_library.security.integrity import raise_for_failures
from greater_library.security.integrity import verify_multiple_checksums

from .context import CliContext

STATUS_MARKS = {"ok": "✓", "warn": "!", "error": "✗"}


def handle_errors(func):
    """Report library errors as 'Error: ...' and exit 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (click.ClickException, click.exceptions.Exit, click.Abort):
            raise
        except GreaterError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except Exception as e:
            import traceback

            click.echo(f"Unexpected error: {e}", err=True)
            click.echo("Traceback:", err=True)
            click.echo(traceback.format_exc(), err=True)
            sys.exit(1)

    return wrapper


def echo_report(report: InstallReport) -> None:
    """Print what an install or update did."""
    prefix = "[dry run] " if report.dry_run else ""
    labels = {
        "installed": "Installed",
        "updated": "Updated",
        "up_to_date": "Up to date",
        "conflict": "Conflict",
        "planned": "Planned",
    }

    for result in report.components:
        if report.dry_run and result.status != "conflict":
            click.echo(f"{prefix}{result.name}: would write {len(result.written)} file(s)")
            for plan in result.files:
                click.echo(f"  {plan.status:<9} {plan.target_path}")
            continue

        click.echo(f"{labels[result.status]}: {result.name}")
        if result.status == "conflict":
            for path in result.conflicts:
                click.echo(f"  locally modified: {path}", err=True)

    if report.transform_message:
        click.echo(f"{prefix}{report.transform_message}")

    for message in report.package_conflicts:
        click.echo(f"Warning: {message}", err=True)

    if report.npm_dependencies:
        packages = " ".join(f"{d.name}@{d.version}" if d.version and d.version != "*" else d.name for d in report.npm_dependencies)
        click.echo(f"\nRequired packages: npm install {packages}")
    if report.npm_dev_dependencies:
        packages = " ".join(f"{d.name}@{d.version}" if d.version and d.version != "*" else d.name for d in report.npm_dev_dependencies)
        click.echo(f"Required dev packages: npm install -D {packages}")

    if report.conflicts:
        click.echo(
            f"\n{len(report.conflicts)} component(s) not installed because of local changes. Re-run with --force to overwrite.",
            err=True,
        )


@click.group()
@click.option(
    "--cwd",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, cwd: Path | None, verbose: bool):
    """Greater - install greater-components into your project."""
    if ctx.obj is None:
        ctx.obj = CliContext.create(cwd=cwd, verbose=verbose)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing components.json")
@click.option("--ref", default=None, help="Registry ref to pin (tag, branch or commit)")
@click.pass_obj
@handle_errors
def init(obj: CliContext, force: bool, ref: str | None):
    """Create components.json with default aliases."""
    if get_component_config_path(obj.cwd).exists() and not force:
        click.echo("Error: components.json already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    config = ComponentConfig(ref=ref or obj.settings.default_ref)
    path = save_component_config(config, obj.cwd)
    click.echo(f"Created {path}")
    click.echo(f"Registry ref: {config.ref}")
    click.echo("Next: greater add <component>")


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--ref", default=None, help="Registry ref (default: components.json ref)")
@click.option("--offline", is_flag=True, help="Install only from the local cache")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--force", is_flag=True, help="Overwrite locally modified files")
@click.option("--skip-verify", is_flag=True, help="Install even if checksums do not match")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
@handle_errors
def add(
    obj: CliContext,
    names: tuple[str, ...],
    ref: str | None,
    offline: bool,
    dry_run: bool,
    force: bool,
    skip_verify: bool,
    yes: bool,
):
    """Add components and their dependencies to the project."""
    config = obj.require_config()
    ref = obj.ref_for(ref, config)

    if skip_verify and not yes and not dry_run:
        click.confirm("Install without checksum verification?", abort=True)
    if force and not yes and not dry_run:
        click.confirm("Overwrite locally modified files?", abort=True)

    async def run() -> InstallReport:
        async with obj.services(offline=offline) as services:
            warning = services.offline.offline_warning()
            if warning:
                click.echo(warning, err=True)
            installer = obj.installer(services, config)
            return await installer.install(
                list(names),
                ref,
                dry_run=dry_run,
                force=force,
                skip_verification=skip_verify,
            )

    report = asyncio.run(run())
    echo_report(report)
    if report.conflicts:
        sys.exit(1)


@cli.command(name="list")
@click.option("--installed", is_flag=True, help="List components installed in this project")
@click.option("--ref", default=None, help="Registry ref to list")
@click.option("--type", "component_type", default=None, help="Only components of this type")
@click.pass_obj
@handle_errors
def list_components(obj: CliContext, installed: bool, ref: str | None, component_type: str | None):
    """List registry or installed components."""
    if installed:
        records = InstalledStateStore(obj.cwd).list()
        if not records:
            click.echo("No components installed")
            return
        for record in records:
            version = f" {record.version}" if record.version else ""
            click.echo(f"{record.name}{version} ({record.ref}, {len(record.files)} file(s))")
        return

    config = obj.load_config()
    ref = obj.ref_for(ref, config)

    async def run():
        async with obj.services() as services:
            return await services.index_client.fetch_registry_index(ref)

    index = asyncio.run(run())
    click.echo(f"Components at {ref}:")
    shown = 0
    for name in get_all_component_names(index):
        component = index.components[name]
        if component_type and component.type != component_type:
            continue
        description = f" - {component.description}" if component.description else ""
        click.echo(f"  {name} [{component.type}]{description}")
        shown += 1
    if shown == 0:
        click.echo("  (none)")


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--ref", default=None, help="Registry ref to compare against")
@click.pass_obj
@handle_errors
def diff(obj: CliContext, names: tuple[str, ...], ref: str | None):
    """Show differences between installed files and the registry."""
    config = obj.require_config()
    ref = obj.ref_for(ref, config)
    targets = list(names) or [record.name for record in InstalledStateStore(obj.cwd).list()]
    if not targets:
        click.echo("No components installed")
        return

    async def run():
        async with obj.services() as services:
            installer = obj.installer(services, config)
            return {name: await installer.diff_component(name, ref) for name in targets}

    results = asyncio.run(run())
    for name, diffs in results.items():
        changed = [d for d in diffs if d.has_changes]
        if not changed:
            click.echo(f"{name}: no changes")
            continue
        click.echo(f"{name}: {len(changed)} file(s) differ")
        for result in changed:
            if result.is_binary:
                click.echo(f"  {result.path}: {format_diff_stats(result)}")
            else:
                click.echo(result.unified, nl=False)


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--ref", default=None, help="Registry ref to update to")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing")
@click.option("--force", is_flag=True, help="Overwrite locally modified files")
@click.pass_obj
@handle_errors
def update(obj: CliContext, names: tuple[str, ...], ref: str | None, dry_run: bool, force: bool):
    """Update installed components to the registry version at a ref."""
    config = obj.require_config()
    ref = obj.ref_for(ref, config)

    async def run() -> InstallReport:
        async with obj.services() as services:
            installer = obj.installer(services, config)
            return await installer.update(ref, list(names) or None, dry_run=dry_run, force=force)

    report = asyncio.run(run())
    if not report.components:
        click.echo(report.transform_message or "All components are up to date")
        return
    echo_report(report)
    if report.conflicts:
        sys.exit(1)


@cli.command()
@click.pass_obj
@handle_errors
def doctor(obj: CliContext):
    """Check project configuration and installed files."""
    config = obj.load_config()
    ref = obj.ref_for(None, config) if config is not None else None
    report = run_doctor(obj.cwd, ref=ref)

    for check in report.checks:
        click.echo(f"{STATUS_MARKS[check.status]} {check.name}: {check.message}")

    click.echo(f"\n{len(report.errors)} error(s), {len(report.warnings)} warning(s)")
    if not report.healthy:
        sys.exit(1)


@cli.command()
@click.option("-n", "--limit", default=20, help="Number of entries to show")
@click.option("--action", default=None, help="Only entries with this action")
@click.option("--component", default=None, help="Only entries for this component")
@click.option("--clear", is_flag=True, help="Delete the audit log")
@handle_errors
def audit(limit: int, action: str | None, component: str | None, clear: bool):
    """Show the install audit log."""
    audit_log = AuditLog()
    if clear:
        audit_log.clear()
        click.echo("Audit log cleared")
        return

    entries = audit_log.read(limit=limit, action=action, component=component)
    if not entries:
        click.echo("No audit entries")
        return

    for entry in entries:
        outcome = "ok" if entry.success else "FAILED"
        subject = entry.component or ""
        if entry.ref:
            subject = f"{subject}@{entry.ref}" if subject else entry.ref
        line = f"{entry.timestamp.isoformat(timespec='seconds')} {entry.action:<16} {outcome:<6} {subject}"
        click.echo(line.rstrip())
        if entry.error_message:
            click.echo(f"    {entry.error_message}")
        for warning in entry.warnings or []:
            click.echo(f"    {warning}")


@cli.group()
def cache():
    """Inspect and manage the local registry cache."""
    pass


@cache.command(name="ls")
@click.pass_obj
@handle_errors
def cache_ls(obj: CliContext):
    """List cached refs and registry indexes."""

    async def run():
        async with obj.services() as services:
            refs = [(ref, len(services.cache.list_cached_files(ref))) for ref in services.cache.list_cached_refs()]
            return refs, services.index_client.list_cached_indexes(), services.cache.root

    refs, indexes, root = asyncio.run(run())
    click.echo(f"Cache: {root}")
    if not refs and not indexes:
        click.echo("  (empty)")
        return
    for ref, count in refs:
        click.echo(f"  {ref}: {count} file(s)")
    if indexes:
        click.echo("Registry indexes:")
        for info in indexes:
            state = "pinned" if info.immutable else ("expired" if info.expired else "fresh")
            click.echo(f"  {info.ref} ({state}, fetched {info.fetched_at.isoformat(timespec='seconds')})")


@cache.command(name="clear")
@click.argument("ref", required=False)
@click.option("--all", "clear_all", is_flag=True, help="Clear every cached ref")
@click.pass_obj
@handle_errors
def cache_clear(obj: CliContext, ref: str | None, clear_all: bool):
    """Remove cached files and indexes for a ref, or everything."""
    if not ref and not clear_all:
        click.echo("Error: Specify a REF or --all", err=True)
        sys.exit(1)

    async def run() -> bool:
        async with obj.services() as services:
            if clear_all:
                services.cache.clear_all_cache()
                services.index_client.clear_all_registry_cache()
                return True
            removed_files = services.cache.clear_cache(ref)
            removed_index = services.index_client.clear_registry_cache(ref)
            return removed_files or removed_index

    removed = asyncio.run(run())
    if clear_all:
        click.echo("Cleared all cached refs")
    elif removed:
        click.echo(f"Cleared cache for {ref}")
    else:
        click.echo(f"Nothing cached for {ref}")


@cache.command(name="prefetch")
@click.argument("ref")
@click.argument("names", nargs=-1)
@click.option("--all", "fetch_all", is_flag=True, help="Prefetch every component")
@click.pass_obj
@handle_errors
def cache_prefetch(obj: CliContext, ref: str, names: tuple[str, ...], fetch_all: bool):
    """Download components at REF into the cache for offline use."""
    if not names and not fetch_all:
        click.echo("Error: Specify component NAMES or --all", err=True)
        sys.exit(1)

    async def run() -> tuple[str, int, int]:
        async with obj.services() as services:
            resolved_ref = await services.fetcher.resolve_ref_for_fetch(ref)
            index = await services.index_client.fetch_registry_index(resolved_ref)
            requested = get_all_component_names(index) if fetch_all else list(names)
            resolution = resolve(requested, index)
            checksums = {
                file.path: file.checksum for resolved in resolution.components for file in resolved.component.files
            }
            paths = list(checksums)

            to_fetch = paths
            already = 0
            if services.fetcher.local_repo_root is None:
                strategy = await services.offline.determine_fetch_strategy(resolved_ref, paths)
                if strategy.strategy == "unavailable":
                    raise NetworkError(f"Network unavailable; {len(strategy.uncached_files)} file(s) cannot be fetched")
                to_fetch = strategy.uncached_files
                already = len(strategy.cached_files)

            batch = await services.fetcher.fetch_multiple_from_git_tag(resolved_ref, to_fetch)
            batch.raise_for_failures()
            raise_for_failures(verify_multiple_checksums(batch.contents, checksums))
            return resolved_ref, len(batch.contents), already

    resolved_ref, fetched, already = asyncio.run(run())
    click.echo(f"Cached {fetched} file(s) at {resolved_ref} ({already} already cached)")


def main():
    """Entry point for greater CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted")
        sys.exit(0)


if __name__ == "__main__":
    main()
