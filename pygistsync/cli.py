"""CLI interface for pygistsync."""

import logging
import shutil
from dataclasses import replace
from typing import Any, Optional

import click

from . import __version__
from .api import GistClient
from .config import config
from .environment import Environment, SyncContext
from .exceptions import ConfigurationMissingError, GistAPIError, GistSyncError
from .output import OutputFormatter
from .settings import (
    CustomSettings,
    ExtensionConfig,
    load_custom_settings,
    save_custom_settings,
)
from .sync import EditorCliInstaller, SyncEngine
from .utils import format_iso_timestamp

logger = logging.getLogger(__name__)


def require_token(ctx: Any, out: OutputFormatter) -> str:
    """Return the token from the command line or config, or exit."""
    token: Optional[str] = ctx.obj.get("token") or config.token
    if not token:
        out.error("Token not configured.")
        out.info("Run 'pygistsync init' or set GISTSYNC_TOKEN")
        ctx.exit(1)
    return token  # type: ignore[return-value]


def build_environment() -> Environment:
    return Environment.detect(
        user_folder=config.user_folder,
        extensions_folder=config.extensions_folder,
    )


def build_context(
    client: GistClient, env: Environment, out: OutputFormatter
) -> SyncContext:
    """Build the sync context, looking up the authenticated user."""
    try:
        user_name = client.get_user_login()
    except GistAPIError as e:
        out.warning(f"Could not determine the authenticated user: {e}")
        user_name = None
    logger.debug("Authenticated as %s", user_name)
    return SyncContext(environment=env, user_name=user_name)


def _format_time(value: Any) -> str:
    return format_iso_timestamp(value) if value else "never"


@click.group()
@click.option("--token", "-t", envvar="GISTSYNC_TOKEN", help="GitHub token")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output summaries in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pygistsync - Sync editor settings, keybindings and extensions via a gist."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pygistsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--token",
    "-t",
    prompt="Enter your GitHub token (gist scope)",
    hide_input=True,
    help="GitHub token",
)
@click.option("--api-url", help="API base URL (for GitHub Enterprise)")
@click.pass_context
def init(ctx: Any, token: str, api_url: Optional[str]) -> None:
    """Initialize pygistsync.

    Stores your token in ~/.config/pygistsync/config.json and creates the
    custom settings file (syncLocalSettings.json) in the editor's User folder
    if it does not exist yet.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating token...")
    try:
        with GistClient(token=token, api_url=api_url) as client:
            login = client.get_user_login()
        out.success(f"Token is valid (user: {login})")
    except GistAPIError as e:
        out.error(f"Token validation failed: {e}")
        if not click.confirm("Save token anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    try:
        config.save_token(token)
        if api_url:
            config.save_api_url(api_url)

        env = build_environment()
        descriptor = env.file_customizedsettings
        if descriptor.exists():
            descriptor_status = "already exists"
        else:
            save_custom_settings(descriptor, CustomSettings(host_name=env.host_name))
            descriptor_status = "created"
    except OSError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Config file", str(config.get_config_path())),
            ("Custom settings", f"{descriptor} ({descriptor_status})"),
            ("Note", "You can now run 'pygistsync upload' or 'pygistsync download'"),
        ],
    )


@main.command()
@click.option("--public", is_flag=True, help="Create the gist as a public gist")
@click.option(
    "--extensions/--no-extensions",
    default=None,
    help="Include the installed extension list",
)
@click.pass_context
def upload(ctx: Any, public: bool, extensions: Optional[bool]) -> None:
    """Upload the local settings to the gist.

    Creates a new gist on the first upload and remembers its id.
    """
    out: OutputFormatter = ctx.obj["out"]
    token = require_token(ctx, out)
    env = build_environment()

    try:
        custom_settings = load_custom_settings(env.file_customizedsettings)
    except GistSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    extension_config = config.load_extension_config()
    if public:
        extension_config = replace(extension_config, public_gist=True)
    if extensions is not None:
        extension_config = replace(extension_config, sync_extensions=extensions)

    with GistClient(token=token) as client:
        context = build_context(client, env, out)
        engine = SyncEngine(client, output=out)
        response = engine.upload(
            context,
            custom_settings,
            extension_config,
            ask_description=lambda default: click.prompt(
                "Gist description", default=default
            ),
        )

    if response is None:
        ctx.exit(1)
        return

    config.save_extension_config(
        replace(
            extension_config,
            gist=response.gist_id,
            public_gist=response.public_gist,
        )
    )
    save_custom_settings(env.file_customizedsettings, response.custom_settings)

    out.print_summary(
        "Upload Complete",
        [
            ("Gist", response.gist_id),
            ("Files", str(len(response.files))),
            ("Public", "yes" if response.public_gist else "no"),
            ("Uploaded at", _format_time(response.custom_settings.last_upload)),
        ],
    )


@main.command()
@click.option("--gist", "-g", "gist_id", help="Gist id (defaults to the saved one)")
@click.option("--force", "-f", is_flag=True, help="Download even if up to date")
@click.option(
    "--extensions/--no-extensions",
    default=None,
    help="Install extensions listed in the gist",
)
@click.option(
    "--remove-extensions",
    is_flag=True,
    help="Remove installed extensions missing from the gist",
)
@click.option(
    "--editor-command",
    default="code",
    show_default=True,
    help="Editor executable used to install and remove extensions",
)
@click.pass_context
def download(
    ctx: Any,
    gist_id: Optional[str],
    force: bool,
    extensions: Optional[bool],
    remove_extensions: bool,
    editor_command: str,
) -> None:
    """Download the settings from the gist to this machine."""
    out: OutputFormatter = ctx.obj["out"]
    token = require_token(ctx, out)
    env = build_environment()

    try:
        custom_settings = load_custom_settings(env.file_customizedsettings)
    except ConfigurationMissingError:
        logger.debug("No custom settings file, using defaults")
        custom_settings = CustomSettings(host_name=env.host_name)
    except GistSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    extension_config: ExtensionConfig = config.load_extension_config()
    if gist_id:
        extension_config = replace(extension_config, gist=gist_id)
    if force:
        extension_config = replace(extension_config, force_download=True)
    if extensions is not None:
        extension_config = replace(extension_config, sync_extensions=extensions)
    if remove_extensions:
        extension_config = replace(extension_config, remove_extensions=True)

    if not extension_config.gist:
        out.error("No gist configured.")
        out.info("Pass --gist or run 'pygistsync upload' first")
        ctx.exit(1)

    installer: Optional[EditorCliInstaller] = None
    if extension_config.sync_extensions:
        if shutil.which(editor_command):
            installer = EditorCliInstaller(editor_command)
        else:
            out.warning(
                f"Editor command '{editor_command}' not found, "
                "extensions will not be installed"
            )

    with GistClient(token=token) as client:
        context = build_context(client, env, out)
        engine = SyncEngine(client, output=out, installer=installer)
        response = engine.download(context, custom_settings, extension_config)

    if response is None:
        ctx.exit(1)
        return

    # The force flag applies to this run only
    config.save_extension_config(
        replace(
            extension_config,
            force_download=False,
            public_gist=response.public_gist,
        )
    )
    if response.already_current:
        return

    if response.custom_settings is not None:
        try:
            save_custom_settings(
                env.file_customizedsettings, response.custom_settings
            )
        except OSError as e:
            out.warning(f"Could not save custom settings: {e}")

    if response.extensions_pending:
        added_label = "Extensions to add (pending)"
        removed_label = "Extensions to remove (pending)"
    else:
        added_label = "Extensions added"
        removed_label = "Extensions removed"

    out.print_summary(
        "Download Complete",
        [
            ("Gist", extension_config.gist or ""),
            ("Files", str(len(response.updated_files))),
            ("Failed", str(len(response.failed_files))),
            (added_label, str(len(response.added_extensions))),
            (removed_label, str(len(response.deleted_extensions))),
        ],
    )
    if response.failed_files:
        ctx.exit(1)


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show the sync configuration of this machine."""
    out: OutputFormatter = ctx.obj["out"]
    env = build_environment()
    extension_config = config.load_extension_config()

    try:
        custom_settings: Optional[CustomSettings] = load_custom_settings(
            env.file_customizedsettings
        )
    except GistSyncError as e:
        logger.debug("Custom settings unavailable: %s", e)
        custom_settings = None

    items = [
        ("Config file", str(config.get_config_path())),
        ("Token", "configured" if config.is_configured() else "not configured"),
        ("Gist", extension_config.gist or "none"),
        ("OS", env.os_type.value),
        ("Host", env.host_name or "unknown"),
        ("User folder", str(env.user_folder)),
        ("Extensions folder", str(env.extensions_folder)),
        ("Sync extensions", "yes" if extension_config.sync_extensions else "no"),
    ]
    if custom_settings is None:
        items.append(("Custom settings", "missing (run 'pygistsync init')"))
    else:
        items.extend(
            [
                ("Last upload", _format_time(custom_settings.last_upload)),
                ("Last download", _format_time(custom_settings.last_download)),
                ("Custom files", str(len(custom_settings.custom_files))),
            ]
        )

    out.print_summary("pygistsync status", items)


@main.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(ctx: Any, yes: bool) -> None:
    """Forget the gist id and the last upload/download times."""
    out: OutputFormatter = ctx.obj["out"]
    if not yes and not click.confirm("Reset the sync configuration?", default=False):
        out.warning("Reset cancelled.")
        return

    env = build_environment()
    config.save_extension_config(ExtensionConfig())

    descriptor = env.file_customizedsettings
    try:
        custom_settings = load_custom_settings(descriptor)
    except ConfigurationMissingError:
        custom_settings = None
    except GistSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if custom_settings is not None:
        save_custom_settings(
            descriptor,
            replace(custom_settings, last_upload=None, last_download=None),
        )
    out.success("Sync configuration reset")


if __name__ == "__main__":
    main()
