"""Thin CLI wrapper for snappy_cloud_image.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from typing import Annotated

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from snappy_cloud_image import __version__
from snappy_cloud_image.config import Settings, get_settings, print_settings_json
from snappy_cloud_image.execution import CommandError, SubprocessRunner
from snappy_cloud_image.imagebuilder import ImageBuildError, UDFQcow2Builder
from snappy_cloud_image.imagestore import ImageStoreError, OpenStackImageStore
from snappy_cloud_image.sysimage import SystemImageClient, SystemImageError
from snappy_cloud_image.types import BuildRequest
from snappy_cloud_image.workflow import Runner, WorkflowError

app = typer.Typer(
    name="snappy-cloud-image",
    help="Snappy Cloud Image - build, publish and retire Ubuntu Core cloud images",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

# Errors reported to the operator without a traceback
HANDLED_ERRORS = (
    CommandError,
    ImageBuildError,
    ImageStoreError,
    SystemImageError,
    WorkflowError,
)


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich.

    Unknown level names fall back to INFO with a warning.
    """
    numeric_level = logging.getLevelName(level.upper())
    known = isinstance(numeric_level, int)
    logging.basicConfig(
        level=numeric_level if known else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    if not known:
        logger.warning("Unknown log level %s, setting to info", level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"snappy-cloud-image version {__version__}")
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
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (overrides SCI_LOG_LEVEL)"),
    ] = None,
) -> None:
    """Snappy Cloud Image - build, publish and retire Ubuntu Core cloud images."""
    configure_logging(log_level or get_settings().log_level)


def build_runner(settings: Settings, http_client: httpx.Client) -> Runner:
    """Wire the workflow runner with its production collaborators."""
    store = OpenStackImageStore(
        SubprocessRunner(timeout=settings.command_timeout),
        openstack_bin=settings.openstack_bin,
    )
    builder = UDFQcow2Builder(
        SubprocessRunner(),
        qcow2_compat=settings.qcow2_compat,
        tmp_dir=settings.tmp_dir,
        timeout=settings.build_timeout,
    )
    source = SystemImageClient(
        http_client,
        base_url=settings.system_image_base_url,
        timeout=settings.http_timeout,
    )
    return Runner(source, store, builder)


@app.command()
def run(
    action: Annotated[
        str,
        typer.Option("--action", "-a", help="Action to perform: create, cleanup or purge"),
    ] = "create",
    release: Annotated[
        str,
        typer.Option("--release", "-r", help="Release of the image"),
    ] = "rolling",
    channel: Annotated[
        str,
        typer.Option("--channel", "-c", help="Channel of the os, kernel and gadget snaps"),
    ] = "edge",
    os_channel: Annotated[
        str | None,
        typer.Option("--os-channel", help="Channel of the os snap (overrides --channel)"),
    ] = None,
    kernel_channel: Annotated[
        str | None,
        typer.Option(
            "--kernel-channel", help="Channel of the kernel snap (overrides --channel)"
        ),
    ] = None,
    gadget_channel: Annotated[
        str | None,
        typer.Option(
            "--gadget-channel", help="Channel of the gadget snap (overrides --channel)"
        ),
    ] = None,
    arch: Annotated[
        str,
        typer.Option("--arch", help="Architecture of the image"),
    ] = "amd64",
    image_type: Annotated[
        str,
        typer.Option("--image-type", "-t", help="Image type used in the image name"),
    ] = "custom",
    properties: Annotated[
        str,
        typer.Option(
            "--properties",
            "-p",
            help="Comma separated key='value' pairs attached to created images",
        ),
    ] = "",
    os_snap: Annotated[
        str,
        typer.Option("--os", help="OS snap used to build the image"),
    ] = "ubuntu-core",
    kernel_snap: Annotated[
        str,
        typer.Option("--kernel", help="Kernel snap used to build the image"),
    ] = "canonical-pc-linux",
    gadget_snap: Annotated[
        str,
        typer.Option("--gadget", help="Gadget snap used to build the image"),
    ] = "canonical-pc",
) -> None:
    """Run one workflow: create a new image, clean up old ones or purge all."""
    request = BuildRequest(
        release=release,
        os_channel=os_channel or channel,
        kernel_channel=kernel_channel or channel,
        gadget_channel=gadget_channel or channel,
        arch=arch,
        image_type=image_type,
        extra_properties=properties,
        os_snap=os_snap,
        kernel_snap=kernel_snap,
        gadget_snap=gadget_snap,
    )

    settings = get_settings()
    with httpx.Client() as http_client:
        runner = build_runner(settings, http_client)
        try:
            runner.execute(action, request)
        except HANDLED_ERRORS as e:
            err_console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None

    console.print(f"[green]Action {action} completed[/green]")


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
        console.print(print_settings_json(settings))
    else:
        tmp_dir_display = (
            str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
        )
        command_timeout_display = (
            str(settings.command_timeout) if settings.command_timeout else "(none)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Endpoints:[/bold]")
        console.print(f"  System-image URL:    {settings.system_image_base_url}")
        console.print(f"  OpenStack client:    {settings.openstack_bin}")
        console.print()
        console.print("[bold]Build:[/bold]")
        console.print(f"  QCOW2 compat:        {settings.qcow2_compat}")
        console.print(f"  Temp directory:      {tmp_dir_display}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  HTTP timeout:        {settings.http_timeout}")
        console.print(f"  Command timeout:     {command_timeout_display}")
        console.print(f"  Build timeout:       {settings.build_timeout}")
