"""Thin CLI wrapper for component_insertion.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from component_insertion import __version__
from component_insertion.config import Settings, get_settings, print_settings_json
from component_insertion.errors import InsertionError

app = typer.Typer(
    name="insertion",
    help="Component Insertion - select, resolve, and describe component build insertions",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"component-insertion version {__version__}")
        raise typer.Exit()


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _print_raw(text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    raise typer.Exit(code=1)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Component Insertion - select, resolve, and describe component build insertions."""
    _configure_logging(get_settings())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        _print_raw(print_settings_json(settings))
        return

    drop_display = (
        str(settings.build_drop_path) if settings.build_drop_path else "(download)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Component build:[/bold]")
    console.print(f"  Collection URI:      {settings.component_build_azdo_uri}")
    console.print(f"  Project:             {settings.component_build_project_name}")
    console.print(f"  Queue:               {settings.component_build_queue_name}")
    console.print(f"  Branch:              {settings.component_branch_name}")
    console.print()
    console.print("[bold]Insertion:[/bold]")
    console.print(f"  Insertion name:      {settings.insertion_name}")
    console.print(f"  Target branch:       {settings.visual_studio_branch_name}")
    console.print(f"  Build drop path:     {drop_display}")
    console.print(f"  Temp root:           {settings.temp_root}")
    console.print()
    console.print("[bold]Changelog:[/bold]")
    console.print(f"  Hard limit:          {settings.changelog_hard_limit}")
    console.print(f"  Platform committer:  {settings.platform_committer}")
    console.print(f"  Dependency bot:      {escape(settings.dependency_bot_author)}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  HTTP timeout:        {settings.http_timeout}")
    console.print(f"  Temp delete wait:    {settings.temp_delete_timeout}")
    console.print(f"  Policy requeue:      {settings.policy_requeue_timeout}")


@app.command("latest-build")
def latest_build(
    build_number: Annotated[
        str | None,
        typer.Option("--build-number", "-b", help="Look up this build number instead"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the build that would be inserted."""
    from component_insertion.service import create_context, resolve_build

    try:
        with create_context(get_settings()) as context:
            build = resolve_build(context, build_number)
    except (InsertionError, ValueError) as e:
        _fail(e)

    if json_output:
        output = {
            "id": build.id,
            "build_number": build.build_number,
            "project_id": build.project_id,
            "source_branch": build.source_branch,
            "finish_time": build.finish_time.isoformat() if build.finish_time else None,
            "result": build.result.value,
            "tags": sorted(build.tags),
            "source_version": build.source_version,
        }
        _print_raw(json.dumps(output, indent=2))
    else:
        console.print(f"[green]{build.build_number}[/green] (id {build.id})")
        console.print(f"  Result:   {build.result.value}")
        console.print(f"  Branch:   {build.source_branch}")
        console.print(f"  Finished: {build.finish_time}")
        console.print(f"  Source:   {build.source_version}")


@app.command()
def artifacts(
    build_number: Annotated[
        str | None,
        typer.Option("--build-number", "-b", help="Build number (latest passing if omitted)"),
    ] = None,
) -> None:
    """Resolve a build's insertion artifacts to a local directory."""
    from component_insertion.artifacts import (
        get_insertion_artifacts,
        validate_insertion_artifacts,
    )
    from component_insertion.service import create_context, resolve_build

    try:
        with create_context(get_settings()) as context:
            build = resolve_build(context, build_number)
            resolved = get_insertion_artifacts(
                context.build_client, context.settings, build
            )
            root = validate_insertion_artifacts(resolved)
    except (InsertionError, ValueError) as e:
        _fail(e)

    console.print(f"[bold]{resolved.kind.value}[/bold] artifacts for {build.build_number}:")
    console.print(f"  {root}")


@app.command()
def components(
    build_number: Annotated[
        str | None,
        typer.Option("--build-number", "-b", help="Build number (latest passing if omitted)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the components and versions a build published."""
    from component_insertion.artifacts import get_insertion_artifacts
    from component_insertion.manifests import get_latest_build_components
    from component_insertion.service import create_context, resolve_build

    try:
        with create_context(get_settings()) as context:
            build = resolve_build(context, build_number)
            resolved = get_insertion_artifacts(
                context.build_client, context.settings, build
            )
            found = get_latest_build_components(
                context.build_client,
                context.settings,
                build,
                resolved,
                context.fetch_manifest,
            )
    except (InsertionError, ValueError) as e:
        _fail(e)

    if json_output:
        output = [
            {
                "name": c.name,
                "filename": c.filename,
                "manifest_url": c.manifest_url,
                "version": c.version,
            }
            for c in found
        ]
        _print_raw(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Found {len(found)} component(s) in {build.build_number}:[/bold]")
    for c in found:
        console.print(f"  [green]{c.name}[/green] {c.version or '(no version)'}")


@app.command()
def changelog(
    from_build: Annotated[str, typer.Argument(help="Previously inserted build number")],
    to_build: Annotated[
        str | None,
        typer.Argument(help="Build number to insert (latest passing if omitted)"),
    ] = None,
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Description to append the changelog to"),
    ] = "",
) -> None:
    """Print the pull request description with the changelog between two builds."""
    from component_insertion.service import compile_changelog, create_context, resolve_build

    try:
        with create_context(get_settings()) as context:
            previous = resolve_build(context, from_build)
            build = resolve_build(context, to_build)
            text, diff_link = compile_changelog(context, previous, build, description)
    except (InsertionError, ValueError) as e:
        _fail(e)

    _print_raw(text)
    _print_raw(f"Diff: {diff_link}")


@app.command("queue-policy")
def queue_policy(
    project_id: Annotated[str, typer.Argument(help="Project id of the pull request")],
    pull_request_id: Annotated[int, typer.Argument(help="Pull request id")],
    policy_name: Annotated[str, typer.Argument(help="Build policy display name")],
) -> None:
    """Requeue a named build policy on a pull request."""
    from component_insertion.azdo import BuildClient
    from component_insertion.policy import queue_build_policy
    from component_insertion.types import PullRequestRef

    settings = get_settings()
    pull_request = PullRequestRef(
        project_id=project_id,
        pull_request_id=pull_request_id,
        description=f"pull request {pull_request_id}",
    )
    try:
        with BuildClient.from_settings(settings) as client:
            queue_build_policy(
                client,
                pull_request,
                policy_name,
                timeout=settings.policy_requeue_timeout,
            )
    except InsertionError as e:
        _fail(e)

    console.print(f"[green]Requeued '{policy_name}'[/green]")


@app.command()
def retain(
    build_number: Annotated[str, typer.Argument(help="Build number to retain")],
) -> None:
    """Mark an inserted build to be kept forever."""
    from component_insertion.builds import retain_component_build
    from component_insertion.service import create_context, resolve_build

    try:
        with create_context(get_settings()) as context:
            build = resolve_build(context, build_number)
            retain_component_build(context.build_client, build)
    except (InsertionError, ValueError) as e:
        _fail(e)

    console.print(f"[green]Retained build {build.build_number}[/green]")


if __name__ == "__main__":
    app()
