"""Thin CLI wrapper for aws_build.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from aws_build import __version__
from aws_build.config import Settings, get_settings, print_settings_json
from aws_build.errors import EXIT_CONFIG_ERROR, AwsBuildError
from aws_build.types import BuildMode, Relabel

app = typer.Typer(
    name="aws-build",
    help="Build the project in a container for deployment to AWS "
    "(al2: Amazon Linux 2, lambda: AWS Lambda)",
    no_args_is_help=True,
)
console = Console()


def configure_logging(log_level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def load_settings() -> Settings:
    """Load settings, exiting with a configuration error if they are invalid."""
    try:
        return get_settings()
    except ValidationError as e:
        console.print(
            f"Error: invalid configuration: {e}", style="red", markup=False, soft_wrap=True
        )
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"aws-build version {__version__}")
        raise typer.Exit()


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
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Build the project in a container for deployment to AWS."""
    configure_logging("DEBUG" if verbose else load_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = load_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True, markup=False)
        return

    def _or(value: object, fallback: str) -> str:
        return fallback if value is None else str(value)

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Container:[/bold]")
    cmd_display = _or(settings.container_cmd, "(auto-detect)")
    repo_display = _or(settings.image_repo_url, "(bundled)")
    console.print(f"  Container command:   {cmd_display}")
    console.print(f"  Rust version:        {settings.rust_version}")
    console.print(f"  Image repository:    {repo_display}")
    console.print(f"  Image revision:      {settings.image_revision}")
    console.print(f"  Relabel:             {_or(settings.relabel, '(none)')}")
    console.print()
    console.print("[bold]Paths:[/bold]", soft_wrap=True)
    console.print(f"  Cache directory:     {settings.cache_dir}", soft_wrap=True)
    out_display = _or(settings.output_dir, "(<project>/target/aws-build)")
    console.print(f"  Output directory:    {out_display}", soft_wrap=True)
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Strip command:       {settings.strip_cmd}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {_or(settings.build_timeout, '(none)')}")
    console.print(f"  Lock timeout:        {_or(settings.lock_timeout, '(none)')}")


ProjectArgument = Annotated[
    Path | None,
    typer.Argument(help="Path of the project to build (default: current directory)"),
]
ContainerCmdOption = Annotated[
    str | None,
    typer.Option(
        "--container-cmd",
        help="Container command: docker, sudo-docker, or podman "
        "(auto-detected by default)",
    ),
]
RustVersionOption = Annotated[
    str | None,
    typer.Option("--rust-version", help="Rust version (default: latest stable)"),
]
StripOption = Annotated[
    bool,
    typer.Option("--strip", help="Strip debug symbols"),
]
BinOption = Annotated[
    list[str] | None,
    typer.Option(
        "--bin",
        help="Name of the binary target to build (required if there is more than "
        "one binary target; can be repeated)",
    ),
]
PackageOption = Annotated[
    list[str] | None,
    typer.Option(
        "--package",
        help="yum devel package to install in build container (can be repeated)",
    ),
]
CodeRootOption = Annotated[
    Path | None,
    typer.Option(
        "--code-root",
        help="Directory mounted in the container; must contain the project "
        "(default: the project)",
    ),
]
RepoOption = Annotated[
    str | None,
    typer.Option(
        "--repo", help="Repository to build the image from (default: bundled)"
    ),
]
RevOption = Annotated[
    str | None,
    typer.Option("--rev", help="Branch, tag or commit of --repo"),
]
OutputRootOption = Annotated[
    Path | None,
    typer.Option(
        "--output-root",
        help="Artifact output directory (default: <project>/target/aws-build)",
    ),
]
RelabelOption = Annotated[
    Relabel | None,
    typer.Option(
        "--relabel",
        help="Relabel bind mounts for SELinux (shared: z, unshared: Z)",
    ),
]
RebuildImageOption = Annotated[
    bool,
    typer.Option("--rebuild-image", help="Rebuild the build image even if cached"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def _execute_build(
    mode: BuildMode,
    project: Path | None,
    container_cmd: str | None,
    rust_version: str | None,
    strip: bool,
    bins: list[str] | None,
    packages: list[str] | None,
    code_root: Path | None,
    repo: str | None,
    rev: str | None,
    output_root: Path | None,
    relabel: Relabel | None,
    rebuild_image: bool,
    json_output: bool,
) -> None:
    from aws_build.builds.service import create_build_request, run_build

    settings = load_settings()

    try:
        request = create_build_request(
            mode,
            project_path=project,
            code_root=code_root,
            output_root=output_root,
            settings=settings,
            container_cmd=container_cmd,
            rust_version=rust_version,
            binary_names=bins or [],
            extra_packages=packages or [],
            repo_url=repo,
            revision=rev,
            strip=strip,
            relabel=relabel,
        )
        output = run_build(request, settings=settings, force_image_rebuild=rebuild_image)
    except AwsBuildError as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(code=e.cli_exit_code) from None

    if json_output:
        console.print(json.dumps(output.to_dict(), indent=2), soft_wrap=True, markup=False)
        return

    console.print(f"[bold]Built {len(output.artifacts)} artifact(s):[/bold]")
    for artifact in output.artifacts:
        console.print(f"  [green]✓ {artifact.output_path}[/green]", soft_wrap=True)
    console.print(f"  Latest: {output.pointer_path}", soft_wrap=True)


@app.command("al2")
def al2(
    project: ProjectArgument = None,
    container_cmd: ContainerCmdOption = None,
    rust_version: RustVersionOption = None,
    strip: StripOption = False,
    bins: BinOption = None,
    packages: PackageOption = None,
    code_root: CodeRootOption = None,
    repo: RepoOption = None,
    rev: RevOption = None,
    output_root: OutputRootOption = None,
    relabel: RelabelOption = None,
    rebuild_image: RebuildImageOption = False,
    json_output: JsonOption = False,
) -> None:
    """Build an executable that can run on Amazon Linux 2."""
    _execute_build(
        BuildMode.AL2,
        project,
        container_cmd,
        rust_version,
        strip,
        bins,
        packages,
        code_root,
        repo,
        rev,
        output_root,
        relabel,
        rebuild_image,
        json_output,
    )


@app.command("lambda")
def lambda_(
    project: ProjectArgument = None,
    container_cmd: ContainerCmdOption = None,
    rust_version: RustVersionOption = None,
    strip: StripOption = False,
    bins: BinOption = None,
    packages: PackageOption = None,
    code_root: CodeRootOption = None,
    repo: RepoOption = None,
    rev: RevOption = None,
    output_root: OutputRootOption = None,
    relabel: RelabelOption = None,
    rebuild_image: RebuildImageOption = False,
    json_output: JsonOption = False,
) -> None:
    """Build a package for deployment to AWS Lambda."""
    _execute_build(
        BuildMode.LAMBDA,
        project,
        container_cmd,
        rust_version,
        strip,
        bins,
        packages,
        code_root,
        repo,
        rev,
        output_root,
        relabel,
        rebuild_image,
        json_output,
    )
