"""
Main CLI entry point for Stack Manifest.

Provides the ``stack-manifest`` command.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
import click
import yaml
from botocore.exceptions import BotoCoreError, NoCredentialsError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from stack_manifest import __version__
from stack_manifest.core.config import ServiceDefinition
from stack_manifest.core.exceptions import (
    ConfigurationError, ManifestError, ResolutionError, StateError, TemplateResolutionError
)
from stack_manifest.services.orchestrator import ReconciliationEngine, load_post_process_hook
from stack_manifest.state.manifest_store import DEFAULT_MANIFEST_PATH, ManifestStore
from stack_manifest.template.loader import load_document


console = Console()
error_console = Console(stderr=True)

# Exit codes for different error types
EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_TEMPLATE_ERROR = 3
EXIT_SERVICE_ERROR = 4
EXIT_STATE_ERROR = 5
EXIT_USER_CANCELLED = 130

SERVICE_FILE_NAMES = ('serverless.yml', 'serverless.yaml', 'serverless.json')


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    """Route log records through rich on stderr."""
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = RichHandler(console=error_console, show_path=debug, markup=False)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # botocore is very chatty at debug level
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def find_service_file(directory: Path) -> Path:
    """Locate the service definition in ``directory``.

    Raises:
        ConfigurationError: If no service file exists
    """
    for name in SERVICE_FILE_NAMES:
        candidate = directory / name
        if candidate.exists():
            return candidate
    raise ConfigurationError(
        f"No service file found in {directory} (looked for {', '.join(SERVICE_FILE_NAMES)})"
    )


def load_template(path: Path) -> Dict[str, Any]:
    """Load a compiled template from disk.

    Raises:
        ConfigurationError: If the file cannot be parsed
    """
    try:
        return load_document(path)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigurationError(f"Failed to parse template {path}: {e}", details=str(e))


def print_summary(manifest: Dict[str, Any], stage: str, saved_to: Optional[Path]) -> None:
    """Human readable summary of one stage's manifest."""
    metadata = manifest.get('metadata', {})
    stack = metadata.get('stack', {})

    console.print(f"📦 [bold]{stack.get('name') or 'unknown stack'}[/bold] ({stage}, {metadata.get('region')})")
    console.print(f"[dim]Status:[/dim] {stack.get('status') or 'NOT DEPLOYED'}")
    if metadata.get('accountId'):
        console.print(f"[dim]Account:[/dim] {metadata['accountId']}")
    console.print()

    endpoints = manifest.get('endpoints', {})
    if endpoints:
        table = Table(show_header=True, header_style="bold")
        table.add_column("TYPE", no_wrap=True)
        table.add_column("METHODS", no_wrap=True)
        table.add_column("URL")

        for endpoint in endpoints.values():
            methods = ', '.join(str(m.get('httpMethod')) for m in endpoint.get('methods') or []) or '*'
            table.add_row(endpoint.get('type'), methods, endpoint.get('url') or '[red]unresolved[/red]')
        console.print(table)
    else:
        console.print("[yellow]No endpoints found[/yellow]")

    functions = manifest.get('functions', {})
    console.print(f"⚡ {len(functions)} deployed functions")

    unknown = manifest.get('unknownResources', [])
    if unknown:
        console.print(f"⚠️  [yellow]{len(unknown)} resources could not be resolved[/yellow]")

    if saved_to is not None:
        console.print(f"✅ [green]Manifest saved to {saved_to}[/green]")


@click.command()
@click.option(
    "--service-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Service definition (defaults to serverless.yml in the current directory)",
)
@click.option(
    "--template-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Compiled CloudFormation template (defaults to the deployed stack's template)",
)
@click.option("--stage", help="Stage to reconcile (defaults to the provider stage)")
@click.option("--region", help="AWS region (defaults to the provider region)")
@click.option("--stack-name", help="Stack name (defaults to <service>-<stage>)")
@click.option("--account-id", help="AWS account id to record in the manifest")
@click.option("--profile", help="AWS credentials profile to use")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help=f"Manifest file (defaults to {DEFAULT_MANIFEST_PATH})",
)
@click.option("--post-process", help="Hook applied to the manifest, as module:function or file.py:function")
@click.option("--json", "as_json", is_flag=True, help="Print the manifest as JSON")
@click.option("--silent", is_flag=True, help="Only print errors")
@click.option("--no-save", is_flag=True, help="Do not write the manifest file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__)
def main(
    service_file: Optional[Path] = None,
    template_file: Optional[Path] = None,
    stage: Optional[str] = None,
    region: Optional[str] = None,
    stack_name: Optional[str] = None,
    account_id: Optional[str] = None,
    profile: Optional[str] = None,
    output: Optional[Path] = None,
    post_process: Optional[str] = None,
    as_json: bool = False,
    silent: bool = False,
    no_save: bool = False,
    debug: bool = False,
) -> None:
    """
    📦 Stack Manifest

    Reconcile a serverless service with its deployed CloudFormation stack
    and write a manifest of every live endpoint.
    """
    configure_logging(debug=debug, quiet=silent or as_json)

    try:
        service = ServiceDefinition.from_file(service_file or find_service_file(Path.cwd()))
        stage = stage or service.provider.stage
        region = region or service.provider.region

        template = load_template(template_file) if template_file else None
        hook = load_post_process_hook(post_process) if post_process else None

        session = boto3.Session(profile_name=profile, region_name=region)
        engine = ReconciliationEngine(session, stage=stage, post_process=hook, silence_post_process=silent)
        document = engine.run(
            service,
            stack_name=stack_name,
            region=region,
            account_id=account_id,
            template=template,
        )

        store = ManifestStore(output)
        saved_to = None
        if no_save:
            merged = store.merge(store.load(), document)
        else:
            merged = store.update(document)
            saved_to = store.path

        if as_json:
            click.echo(json.dumps(merged, indent=2, default=str))
        elif not silent:
            print_summary(document[stage], stage, saved_to)

    except KeyboardInterrupt:
        error_console.print("\n⚠️  [yellow]Operation cancelled by user[/yellow]")
        sys.exit(EXIT_USER_CANCELLED)
    except ConfigurationError as e:
        error_console.print(f"❌ [red]Configuration error: {e}[/red]")
        sys.exit(EXIT_CONFIG_ERROR)
    except TemplateResolutionError as e:
        error_console.print(f"❌ [red]Template error: {e}[/red]")
        sys.exit(EXIT_TEMPLATE_ERROR)
    except (ResolutionError, NoCredentialsError, BotoCoreError) as e:
        error_console.print(f"❌ [red]AWS error: {e}[/red]")
        sys.exit(EXIT_SERVICE_ERROR)
    except StateError as e:
        error_console.print(f"❌ [red]Manifest file error: {e}[/red]")
        sys.exit(EXIT_STATE_ERROR)
    except ManifestError as e:
        error_console.print(f"❌ [red]{e}[/red]")
        sys.exit(EXIT_GENERAL_ERROR)
    except Exception as e:
        error_console.print(f"💥 [red]Unexpected error: {e}[/red]")
        error_console.print("[dim]Run again with --debug for details.[/dim]")
        sys.exit(EXIT_GENERAL_ERROR)


if __name__ == "__main__":
    main()
