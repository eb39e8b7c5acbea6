"""Core sync engine: upload and download reconciliation."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import GistClient
from ..environment import Environment, SyncContext
from ..exceptions import (
    ConfigurationMissingError,
    GistAPIError,
    GistSyncError,
    OwnershipMismatchError,
    RemoteCreateFailedError,
    RemoteReadFailedError,
    RemoteWriteFailedError,
)
from ..models import GistDocument
from ..output import OutputFormatter
from ..pragma import process_before_upload, process_before_write
from ..settings import CloudSetting, CustomSettings, ExtensionConfig
from ..utils import DEFAULT_SCAN_DEPTH, DEFAULT_WRITE_WORKERS, same_instant, utc_now
from .classifier import EntryKind, classify_key, route_entry
from .extensions import (
    EditorCliInstaller,
    ExtensionInformation,
    ExtensionScanner,
    create_extension_file,
    diff_extensions,
    parse_extension_list,
)
from .operations import SyncOperations
from .scanner import FileScanner, SettingFile

logger = logging.getLogger(__name__)

# Remote entries starting with this are kept when other entries are replaced,
# so each OS family's keybindings survive uploads from the other
KEYBINDINGS_PREFIX = "keybindings"


@dataclass
class UploadResponse:
    """Result of a successful upload."""

    gist_id: str
    files: list[SettingFile]
    custom_settings: CustomSettings
    """Descriptor with ``last_upload`` set to this upload"""

    public_gist: bool = False


@dataclass
class DownloadResponse:
    """Result of a download that reached the remote gist."""

    updated_files: list[SettingFile] = field(default_factory=list)
    added_extensions: list[ExtensionInformation] = field(default_factory=list)
    deleted_extensions: list[ExtensionInformation] = field(default_factory=list)
    custom_settings: Optional[CustomSettings] = None
    """Descriptor with ``last_download`` set to the remote upload time"""

    public_gist: bool = False
    already_current: bool = False
    """True when nothing was done because the local settings are current"""

    failed_files: list[str] = field(default_factory=list)
    """Remote keys whose local write failed"""

    extensions_pending: bool = False
    """True when the extension diff was computed but no installer applied it"""


def is_up_to_date(
    custom_settings: CustomSettings, remote_last_upload: Optional[datetime]
) -> bool:
    """Staleness check against the marker document.

    Local settings are current when either the last download or the last
    upload from this machine carries the remote upload time.
    """
    up_to_date = same_instant(custom_settings.last_download, remote_last_upload)
    return up_to_date or same_instant(custom_settings.last_upload, remote_last_upload)


class SyncEngine:
    """Core sync engine that uploads and downloads editor settings."""

    def __init__(
        self,
        client: GistClient,
        output: Optional[OutputFormatter] = None,
        installer: Optional[EditorCliInstaller] = None,
        max_workers: int = DEFAULT_WRITE_WORKERS,
        scanner: Optional[FileScanner] = None,
        extension_scanner: Optional[ExtensionScanner] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Gist API client
            output: Output formatter for displaying progress/status
            installer: Applies extension diffs on download (None to only
                compute them)
            max_workers: Number of parallel workers for writing files
            scanner: Local file collector
            extension_scanner: Installed extension enumerator
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.installer = installer
        self.max_workers = max(1, max_workers)
        self.scanner = scanner or FileScanner()
        self.extension_scanner = extension_scanner or ExtensionScanner()
        self.operations = SyncOperations()

    @contextmanager
    def _spinner(self, description: str) -> Iterator[None]:
        if self.output.quiet:
            yield
            return
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description, total=None)
            yield

    # =========================
    # Upload
    # =========================

    def collect_local_files(
        self,
        context: SyncContext,
        custom_settings: CustomSettings,
        sync_extensions: bool,
    ) -> list[SettingFile]:
        """Collect the allow-listed files below the User folder.

        When extension sync is enabled the installed extension list is written
        to ``extensions.json`` first, so it is collected like any other file.

        Raises:
            GistSyncNotFoundError: If the User folder does not exist
        """
        env = context.environment
        if sync_extensions:
            installed = self.extension_scanner.installed_extensions(
                env.extensions_folder
            )
            extension_file = create_extension_file(
                env, installed, custom_settings.ignore_extensions
            )
            try:
                written = self.operations.write_file(
                    env.file_extension, extension_file.content
                )
            except OSError as e:
                logger.debug("Writing %s failed: %s", env.file_extension, e)
                written = False
            if not written:
                self.output.warning("Unable to save the extension list")
            else:
                logger.debug("Listed %d extension(s)", len(installed))

        return self.scanner.list_files(
            env.user_folder,
            0,
            DEFAULT_SCAN_DEPTH,
            custom_settings.supported_file_extensions,
        )

    def build_upload_set(
        self,
        context: SyncContext,
        custom_settings: CustomSettings,
        collected_files: list[SettingFile],
    ) -> list[SettingFile]:
        """Assemble the outgoing file set from the collected files.

        Args:
            context: Sync context
            custom_settings: Descriptor supplying ignore rules and custom files
            collected_files: Files returned by :meth:`collect_local_files`

        Returns:
            Files to upload (custom files first), without the marker document

        Raises:
            ConfigurationMissingError: If the descriptor does not exist
            PragmaError: If settings.json has a malformed annotation
        """
        env = context.environment
        self._require_descriptor(env)

        ignored_names = set(custom_settings.ignore_upload_files)
        ignored_folders = custom_settings.ignore_upload_folders

        def is_ignored(setting_file: SettingFile) -> bool:
            if setting_file.file_name == env.file_customizedsettings_name:
                return True
            if setting_file.file_name in ignored_names:
                return True
            path = setting_file.file_path.as_posix() if setting_file.file_path else ""
            return any(folder in path for folder in ignored_folders)

        upload_files: list[SettingFile] = []

        for name, path in custom_settings.custom_files.items():
            custom_file = self.scanner.get_custom_file(Path(path).expanduser(), name)
            if custom_file is None:
                logger.debug("Custom file %s not found at %s", name, path)
                continue
            if not custom_file.content:
                logger.debug("Skipping empty custom file %s", name)
                continue
            upload_files.append(custom_file)

        for setting_file in collected_files:
            if is_ignored(setting_file):
                logger.debug("Ignoring %s", setting_file.gist_name)
                continue
            # keybindingsMac.json only ever exists remotely
            if setting_file.gist_name == env.file_keybinding_mac:
                continue
            if not setting_file.content:
                logger.debug("Skipping empty file %s", setting_file.gist_name)
                continue

            if setting_file.gist_name == env.file_keybinding_name:
                setting_file = replace(setting_file, gist_name=env.keybinding_gist_name)
            elif setting_file.gist_name == env.file_setting_name:
                setting_file = replace(
                    setting_file, content=process_before_upload(setting_file.content)
                )
            upload_files.append(setting_file)

        return upload_files

    def upload(
        self,
        context: SyncContext,
        custom_settings: CustomSettings,
        extension_config: ExtensionConfig,
        now: Optional[datetime] = None,
        ask_description: Optional[Callable[[str], str]] = None,
    ) -> Optional[UploadResponse]:
        """Upload the local settings to the gist.

        Args:
            context: Sync context (environment and authenticated user)
            custom_settings: Descriptor contents
            extension_config: Gist id and sync options
            now: Upload timestamp (defaults to the current time)
            ask_description: Called with the default description when a new
                gist is created and the descriptor asks for a name

        Returns:
            UploadResponse, or None if the upload failed (the failure has
            already been reported and the gist was not modified)
        """
        env = context.environment
        now = now or utc_now()

        try:
            self._require_descriptor(env)
            with self._spinner("Collecting settings files..."):
                collected = self.collect_local_files(
                    context, custom_settings, extension_config.sync_extensions
                )
                files = self.build_upload_set(context, custom_settings, collected)

            marker = CloudSetting(last_upload=now)
            files.append(
                SettingFile(
                    env.file_cloudsettings_name,
                    marker.to_json(),
                    None,
                    env.file_cloudsettings_name,
                )
            )

            gist_id = extension_config.gist
            if not gist_id:
                gist_id = self._create_gist(
                    custom_settings, extension_config.public_gist, ask_description
                )

            with self._spinner("Uploading files..."):
                gist = self._read_gist(gist_id)
                self._check_owner(gist, context)
                self._save_gist(gist_id, gist, files)
        except (GistSyncError, OSError) as e:
            logger.debug("Upload failed", exc_info=True)
            self.output.error(f"Upload failed: {e}")
            return None

        public_gist = extension_config.public_gist or gist.public
        self.output.success(f"Uploaded {len(files)} file(s) to gist {gist_id}")
        return UploadResponse(
            gist_id=gist_id,
            files=files,
            custom_settings=custom_settings.with_last_upload(now),
            public_gist=public_gist,
        )

    def _require_descriptor(self, env: Environment) -> None:
        if not env.file_customizedsettings.exists():
            raise ConfigurationMissingError(
                f"Custom settings file not found: {env.file_customizedsettings}. "
                "Run 'pygistsync init' to create it."
            )

    def _create_gist(
        self,
        custom_settings: CustomSettings,
        public: bool,
        ask_description: Optional[Callable[[str], str]],
    ) -> str:
        description = custom_settings.gist_description
        if custom_settings.ask_gist_name and ask_description is not None:
            description = ask_description(description) or description
        try:
            gist_id = self.client.create_gist(public, description)
        except GistAPIError as e:
            raise RemoteCreateFailedError(f"Unable to create a new gist: {e}") from e
        self.output.info(f"New gist created: {gist_id}")
        return gist_id

    def _read_gist(self, gist_id: Optional[str]) -> GistDocument:
        if not gist_id:
            raise RemoteReadFailedError("No gist id configured")
        try:
            return self.client.read_gist(gist_id)
        except GistAPIError as e:
            raise RemoteReadFailedError(f"Unable to read gist {gist_id}: {e}") from e

    def _check_owner(self, gist: GistDocument, context: SyncContext) -> None:
        if gist.owner is None or context.user_name is None:
            return
        owner = gist.owner.strip()
        user_name = context.user_name.strip()
        if owner != user_name:
            logger.debug("Current user: '%s', gist owner: '%s'", user_name, owner)
            raise OwnershipMismatchError(owner, user_name)

    def _save_gist(
        self, gist_id: str, gist: GistDocument, files: list[SettingFile]
    ) -> None:
        payload: dict[str, Optional[str]] = {
            name: None
            for name in gist.files
            if not name.startswith(KEYBINDINGS_PREFIX)
        }
        for setting_file in files:
            payload[setting_file.gist_name] = setting_file.content
        try:
            self.client.update_gist(gist_id, payload)
        except GistAPIError as e:
            raise RemoteWriteFailedError(f"Unable to save gist {gist_id}: {e}") from e

    # =========================
    # Download
    # =========================

    def parse_remote_files(
        self,
        env: Environment,
        contents: dict[str, str],
        custom_files: dict[str, str],
    ) -> list[SettingFile]:
        """Turn remote entries into local file records.

        Args:
            env: Environment (OS classification and file names)
            contents: Remote key -> content
            custom_files: Descriptor's custom file mapping

        Returns:
            Records for every accepted entry; ``file_path`` is set for custom
            files and None for files placed below the User folder
        """
        files: list[SettingFile] = []
        for gist_name, content in contents.items():
            decision = route_entry(gist_name, content, env, custom_files)
            if not decision.accepted:
                logger.debug("Skipping %s: %s", gist_name, decision.reason)
                continue

            if decision.kind == EntryKind.CUSTOM_FILE and decision.custom_name:
                target = Path(custom_files[decision.custom_name]).expanduser()
                files.append(
                    SettingFile(decision.custom_name, content, target, gist_name)
                )
            elif gist_name == env.file_keybinding_mac:
                files.append(
                    SettingFile(env.file_keybinding_name, content, None, gist_name)
                )
            else:
                files.append(SettingFile(gist_name, content, None, gist_name))
        return files

    def download(
        self,
        context: SyncContext,
        custom_settings: CustomSettings,
        extension_config: ExtensionConfig,
    ) -> Optional[DownloadResponse]:
        """Download the gist and apply it to this machine.

        Args:
            context: Sync context (environment and authenticated user)
            custom_settings: Descriptor contents (custom files, timestamps)
            extension_config: Gist id and sync options

        Returns:
            DownloadResponse (``already_current`` set when nothing had to be
            done), or None if the gist could not be read
        """
        env = context.environment

        try:
            with self._spinner("Reading gist..."):
                gist = self._read_gist(extension_config.gist)
            public_gist = extension_config.public_gist or gist.public
            contents = gist.file_contents()

            marker_content = contents.get(env.file_cloudsettings_name)
            if marker_content is not None:
                marker = CloudSetting.from_json(marker_content)
                if not extension_config.force_download and is_up_to_date(
                    custom_settings, marker.last_upload
                ):
                    self.output.info("You already have the latest version of settings")
                    return DownloadResponse(
                        custom_settings=custom_settings,
                        public_gist=public_gist,
                        already_current=True,
                    )
                custom_settings = custom_settings.with_last_download(
                    marker.last_upload
                )

            updated_files = self.parse_remote_files(
                env, contents, custom_settings.custom_files
            )
        except (GistSyncError, OSError) as e:
            logger.debug("Download failed", exc_info=True)
            self.output.error(f"Download failed: {e}")
            return None

        added: list[ExtensionInformation] = []
        deleted: list[ExtensionInformation] = []
        extensions_pending = False
        to_write: list[SettingFile] = []

        for setting_file in updated_files:
            if classify_key(setting_file.gist_name, env) == EntryKind.EXTENSION_LIST:
                if extension_config.sync_extensions:
                    added, deleted = self.sync_extensions(
                        context, setting_file.content, custom_settings, extension_config
                    )
                    extensions_pending = self.installer is None and bool(
                        added or deleted
                    )
                continue
            to_write.append(setting_file)

        failed = self.write_files(context, to_write, custom_settings)

        written = len(to_write) - len(failed)
        self.output.success(
            f"Downloaded {written} file(s) from gist {extension_config.gist}"
        )
        return DownloadResponse(
            updated_files=updated_files,
            added_extensions=added,
            deleted_extensions=deleted,
            custom_settings=custom_settings,
            public_gist=public_gist,
            failed_files=failed,
            extensions_pending=extensions_pending,
        )

    def sync_extensions(
        self,
        context: SyncContext,
        content: str,
        custom_settings: CustomSettings,
        extension_config: ExtensionConfig,
    ) -> tuple[list[ExtensionInformation], list[ExtensionInformation]]:
        """Diff the remote extension list against the installed extensions.

        The diff is applied through the installer when one is configured.
        A malformed remote list is reported and treated as empty.

        Returns:
            Tuple of (added, deleted) extensions; without an installer these
            are the changes that still have to be made
        """
        env = context.environment
        try:
            remote = parse_extension_list(content)
        except GistSyncError as e:
            self.output.warning(str(e))
            return [], []

        installed = self.extension_scanner.installed_extensions(env.extensions_folder)
        to_add, to_remove = diff_extensions(
            remote,
            installed,
            custom_settings.ignore_extensions,
            extension_config.remove_extensions,
            env.self_extension_id,
        )
        logger.debug(
            "Extension diff: %d to add, %d to remove", len(to_add), len(to_remove)
        )

        if self.installer is not None and (to_add or to_remove):
            to_add, to_remove = self.installer.apply(to_add, to_remove)
            if not extension_config.quiet_sync:
                for ext in to_add:
                    self.output.info(f"Installed extension {ext.identifier}")
                for ext in to_remove:
                    self.output.info(f"Removed extension {ext.identifier}")
        elif to_add or to_remove:
            self.output.warning(
                f"{len(to_add)} extension(s) to install and {len(to_remove)} to "
                "remove were not applied: no editor command available"
            )

        return to_add, to_remove

    def write_files(
        self,
        context: SyncContext,
        files: list[SettingFile],
        custom_settings: CustomSettings,
    ) -> list[str]:
        """Write downloaded files in parallel.

        Every write runs independently; a failure is logged and reported but
        neither cancels nor rolls back the others.

        Returns:
            Sorted remote keys of the files that could not be written
        """
        if not files:
            return []

        logger.debug(f"Writing {len(files)} file(s) with {self.max_workers} workers")
        failed: list[str] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_file = {
                executor.submit(
                    self._write_single_file, context, setting_file, custom_settings
                ): setting_file
                for setting_file in files
            }
            for future in as_completed(future_to_file):
                setting_file = future_to_file[future]
                try:
                    target = future.result()
                    logger.debug("Wrote %s to %s", setting_file.gist_name, target)
                except Exception as e:
                    logger.error(f"Failed to write {setting_file.gist_name}: {e}")
                    self.output.warning(
                        f"Failed to write {setting_file.gist_name}: {e}"
                    )
                    failed.append(setting_file.gist_name)

        return sorted(failed)

    def _write_single_file(
        self,
        context: SyncContext,
        setting_file: SettingFile,
        custom_settings: CustomSettings,
    ) -> Path:
        env = context.environment
        if setting_file.file_path is not None:
            target = self.operations.create_custom_dir_tree(setting_file.file_path)
        else:
            target = self.operations.create_dir_tree(
                env.user_folder, setting_file.file_name
            )

        content = setting_file.content
        if classify_key(setting_file.gist_name, env) == EntryKind.SETTINGS:
            content = process_before_write(
                self.operations.read_file(target),
                content,
                env.os_type,
                custom_settings.host_name or env.host_name,
            )

        self.operations.write_file(target, content)
        return target
