"""
Generate command for vendorlock.

Reads a lock file and writes the offline-source manifest a sandboxed
build consumes. Either the whole manifest is written or nothing is.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from ..config import get_github_token, load_config, logger as root_logger, merge_configs
from ..domain import ArchiveGroup, Manifest
from ..exit_codes import CommandError, INTERRUPTED, get_exit_code_for_exception
from ..services.manifest_service import OUTPUT_FORMATS, GenerateOptions, ManifestService
from ..services.resolve_service import ResolverOptions, ResolverService


def _cli_overrides(concurrency, retries, timeout, vendor_dir, output_format) -> dict:
    """Config fragment for the flags that were actually given."""
    overrides: dict = {'resolver': {}, 'vendor': {}, 'output': {}}
    if concurrency is not None:
        overrides['resolver']['concurrency'] = concurrency
    if retries is not None:
        overrides['resolver']['max_retries'] = retries
    if timeout is not None:
        overrides['resolver']['timeout_seconds'] = timeout
    if vendor_dir is not None:
        overrides['vendor']['directory'] = vendor_dir
    if output_format is not None:
        overrides['output']['format'] = output_format
    return overrides


def _configure_logging(config: dict, verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = getattr(logging, str(config.get('logging', {}).get('level', 'INFO')).upper(), logging.INFO)
    root_logger.setLevel(level)


def _print_summary(manifest: Manifest, output: Path) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console(stderr=True)
    table = Table(
        title=f"Sources written to {output}",
        caption=f"{len(manifest.archives)} archives, {len(manifest.checkouts)} checkouts",
    )
    table.add_column("Type", style="cyan")
    table.add_column("Source")
    table.add_column("Pinned", style="dim")
    table.add_column("Dest", style="green")

    for group in manifest.groups:
        if isinstance(group, ArchiveGroup):
            table.add_row("archive", f"{group.name} {group.version}", group.sha256[:12], group.dest)
        else:
            names = ", ".join(p.name for p in group.packages)
            table.add_row("git", f"{group.url} ({names})", group.commit[:12], group.dest)

    console.print(table)


@click.command('generate')
@click.argument('lockfile', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('-o', '--output', 'output', type=click.Path(dir_okay=False, path_type=Path),
              help='Manifest path (default: output.filename in the current directory)')
@click.option('--format', 'output_format', type=click.Choice(OUTPUT_FORMATS),
              help='manifest: sources + vendor_config; flatpak: flatpak-builder source list')
@click.option('--vendor-config', 'vendor_config', type=click.Path(dir_okay=False, path_type=Path),
              help='Also write the vendor redirection config to this path')
@click.option('--vendor-dir', help='Vendor directory used in destinations (default: vendor)')
@click.option('--concurrency', type=click.IntRange(min=1), help='Parallel git metadata lookups')
@click.option('--retries', type=click.IntRange(min=0), help='Retries per lookup on transient failure')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Per-attempt timeout in seconds')
@click.option('--pretty', is_flag=True, help='Progress bar and summary table on stderr')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.option('--quiet', '-q', is_flag=True, help='Only warnings and errors')
def generate_handler(
    lockfile: Path,
    output: Optional[Path],
    output_format: Optional[str],
    vendor_config: Optional[Path],
    vendor_dir: Optional[str],
    concurrency: Optional[int],
    retries: Optional[int],
    timeout: Optional[float],
    pretty: bool,
    verbose: bool,
    quiet: bool,
):
    """
    Generate an offline-source manifest from a lock file.

    Every registry archive, checksum and git checkout the build would
    fetch is listed with a deterministic vendor destination. Git
    repositories are queried once per pinned commit to find where each
    crate lives inside the checkout.

    \b
    Examples:
        # Write cargo-sources.json in the current directory
        vendorlock generate Cargo.lock
        # Choose the output path
        vendorlock generate Cargo.lock -o build/cargo-sources.json
        # flatpak-builder source list plus a standalone cargo config
        vendorlock generate Cargo.lock --format flatpak --vendor-config cargo-config.toml
    """
    try:
        config = merge_configs(
            load_config(),
            _cli_overrides(concurrency, retries, timeout, vendor_dir, output_format),
        )
        _configure_logging(config, verbose, quiet)

        if output is None:
            output = Path.cwd() / config['output']['filename']

        resolver = ResolverService(
            ResolverOptions.from_config(config),
            token=get_github_token(config),
        )
        service = ManifestService(
            config=config,
            options=GenerateOptions.from_config(config),
            resolver=resolver,
        )

        if pretty:
            from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                transient=True,
            ) as progress:
                task = progress.add_task("Resolving git checkouts...", total=None)
                manifest = service.generate(
                    lockfile, output,
                    vendor_config_path=vendor_config,
                    progress=lambda request: progress.update(
                        task, advance=1, description=f"Resolved {request.label}"
                    ),
                )
            _print_summary(manifest, output)
        else:
            manifest = service.generate(lockfile, output, vendor_config_path=vendor_config)

        if not quiet:
            click.echo(f"Wrote {len(manifest.groups)} sources to {output}", err=True)

    except CommandError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("Interrupted; no manifest written", err=True)
        sys.exit(INTERRUPTED)
    except (OSError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(get_exit_code_for_exception(e))
