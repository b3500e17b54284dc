from __future__ import annotations
"""View-agnostic presenter that wraps controller operations."""
from dataclasses import replace
import logging
import threading
from typing import Callable, Iterable

from .controller import S3ExplorerController
from .errors import OperationCancelledError, RemoteError, TransferCancelledError
from .models import DisplayNode, LoadMoreNode, ObjectDetails, ObjectEntry
from .profiles import ConnectionProfile
from .progress import CancellationToken, ProgressTracker, ProgressUpdate
from .settings import AppSettings, SettingsStorage
from .ui_utils import PackageInfo, load_package_info


DispatchFn = Callable[[Callable[[], None]], None]
RunnerFn = Callable[[Callable[[], None]], None]
SuccessFn = Callable[[object], None]
ErrorFn = Callable[[str], None]
DoneFn = Callable[[], None]

AUTH_FAILURE_MESSAGE = "Authentication failed. Please check your S3 credentials."

LOGGER = logging.getLogger(__name__)


def _format_error(exc: Exception) -> str:
    if isinstance(exc, RemoteError) and exc.is_auth_error:
        return f"{AUTH_FAILURE_MESSAGE} ({exc})"
    return str(exc)


def _start_thread(task: Callable[[], None]) -> None:
    threading.Thread(target=task, daemon=True).start()


class S3ExplorerPresenter:
    """Runs background operations and returns results via callbacks.

    ``dispatch`` hands callbacks back to the UI thread; ``runner`` decides
    where the work itself runs (a daemon thread by default).
    """

    def __init__(
        self,
        *,
        controller: S3ExplorerController | None = None,
        settings_storage: SettingsStorage | None = None,
        dispatch: DispatchFn | None = None,
        runner: RunnerFn | None = None,
        on_auth_failure: ErrorFn | None = None,
    ) -> None:
        self._settings_storage = settings_storage or SettingsStorage()
        self._settings = self._settings_storage.load()
        self._controller = controller or S3ExplorerController(settings=self._settings)
        self._dispatch = dispatch or (lambda func: func())
        self._runner = runner or _start_thread
        self._on_auth_failure = on_auth_failure
        self._package_info = load_package_info()

    @property
    def settings(self) -> AppSettings:
        return replace(self._settings)

    @property
    def package_info(self) -> PackageInfo:
        return self._package_info

    @property
    def is_connected(self) -> bool:
        return self._controller.is_connected

    @property
    def selected_profile(self) -> str | None:
        return self._controller.selected_profile

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._settings_storage.save(settings)
        self._controller.apply_settings(settings)

    def update_page_size(self, value: int) -> None:
        self.save_settings(replace(self._settings, page_size=max(int(value), 1)))

    def update_last_connection(self, connection: str) -> None:
        if not self._settings.remember_last_bucket:
            return
        self._settings = replace(self._settings, last_connection=connection or "")
        self._settings_storage.save(self._settings)

    def update_last_bucket(self, bucket: str) -> None:
        if not self._settings.remember_last_bucket:
            return
        self._settings = replace(self._settings, last_bucket=bucket or "")
        self._settings_storage.save(self._settings)

    def maybe_auto_connect_profile(self) -> str | None:
        if not self._settings.remember_last_bucket:
            return None
        return self._settings.last_connection or None

    def list_profiles(self) -> list[ConnectionProfile]:
        return self._controller.list_profiles()

    def save_profile(self, profile: ConnectionProfile, *, original_name: str | None = None) -> None:
        self._controller.save_profile(profile, original_name=original_name)

    def delete_profile(self, name: str) -> None:
        self._controller.delete_profile(name)

    def get_profile(self, name: str) -> ConnectionProfile:
        return self._controller.get_profile(name)

    def profile_names(self, profiles: Iterable[ConnectionProfile] | None = None) -> list[str]:
        return [profile.name for profile in (profiles if profiles is not None else self.list_profiles())]

    def disconnect(self) -> None:
        self._controller.disconnect()

    def connect(
        self,
        *,
        profile_name: str,
        on_success: Callable[[list[str]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Connecting using profile '%s'", profile_name)

        def work() -> list[str]:
            buckets = self._controller.connect_with_profile(profile_name)
            self.update_last_connection(profile_name)
            return buckets

        self._submit(f"connect to profile '{profile_name}'", work, on_success, on_error, on_done)

    def refresh_buckets(
        self,
        *,
        on_success: Callable[[list[str]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._submit("refresh buckets", self._controller.refresh_buckets, on_success, on_error, on_done)

    def list_children(
        self,
        *,
        node: DisplayNode | None,
        on_success: Callable[[list[DisplayNode]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._submit(
            "list children",
            lambda: self._controller.list_children(node),
            on_success,
            on_error,
            on_done,
        )

    def load_more(
        self,
        *,
        node: LoadMoreNode,
        on_success: Callable[[list[DisplayNode]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._submit(
            f"load more items for {node.bucket}/{node.prefix}",
            lambda: self._controller.load_more(node),
            on_success,
            on_error,
            on_done,
        )

    def refresh(self, node: DisplayNode | None = None) -> None:
        self._controller.refresh(node)

    def search_objects(
        self,
        *,
        bucket_name: str,
        term: str,
        prefix: str | None = None,
        cached_only: bool = False,
        on_success: Callable[[list[ObjectEntry]], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._submit(
            f"search {bucket_name} for '{term}'",
            lambda: self._controller.search_objects(bucket_name, term, prefix, cached_only=cached_only),
            on_success,
            on_error,
            on_done,
        )

    def get_object_details(
        self,
        *,
        bucket_name: str,
        key: str,
        on_success: Callable[[ObjectDetails], None],
        on_error: ErrorFn,
    ) -> None:
        self._submit(
            f"get details of {bucket_name}/{key}",
            lambda: self._controller.get_object_details(bucket_name=bucket_name, key=key),
            on_success,
            on_error,
        )

    def create_folder(
        self,
        *,
        bucket_name: str,
        prefix: str,
        name: str,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
    ) -> None:
        self._submit(
            f"create folder '{name}' in {bucket_name}/{prefix}",
            lambda: self._controller.create_folder(bucket_name=bucket_name, prefix=prefix, name=name),
            on_success,
            on_error,
        )

    def rename_object(
        self,
        *,
        bucket_name: str,
        source_key: str,
        destination_key: str,
        on_success: DoneFn,
        on_error: ErrorFn,
    ) -> None:
        self._submit(
            f"rename {bucket_name}/{source_key}",
            lambda: self._controller.rename_object(
                bucket_name=bucket_name,
                source_key=source_key,
                destination_key=destination_key,
            ),
            lambda _result: on_success(),
            on_error,
        )

    def delete_objects(
        self,
        *,
        bucket_name: str,
        keys: list[str],
        token: CancellationToken | None = None,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
        on_success: Callable[[list[str]], None] | None = None,
        on_error: ErrorFn | None = None,
        on_cancelled: Callable[[list[str]], None] | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        tracker = self._build_tracker(on_progress, token)

        def task() -> None:
            try:
                deleted = self._controller.delete_objects(
                    bucket_name=bucket_name,
                    keys=keys,
                    token=token,
                    tracker=tracker,
                )
            except OperationCancelledError as exc:
                completed = exc.completed
                LOGGER.debug("Delete cancelled after %d object(s)", len(completed))
                if on_cancelled:
                    self._dispatch(lambda: on_cancelled(completed))
            except Exception as exc:
                self._report_error(f"delete objects in {bucket_name}", exc, on_error)
            else:
                if on_success:
                    self._dispatch(lambda: on_success(deleted))
            finally:
                if on_done:
                    self._dispatch(on_done)

        self._runner(task)

    def upload_files(
        self,
        *,
        bucket_name: str,
        prefix: str,
        source_paths: list[str],
        token: CancellationToken | None = None,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
        on_success: Callable[[list[str]], None] | None = None,
        on_error: ErrorFn | None = None,
        on_cancelled: Callable[[list[str]], None] | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        tracker = self._build_tracker(on_progress, token)

        def task() -> None:
            try:
                uploaded = self._controller.upload_files(
                    bucket_name=bucket_name,
                    prefix=prefix,
                    source_paths=source_paths,
                    token=token,
                    tracker=tracker,
                )
            except OperationCancelledError as exc:
                completed = exc.completed
                LOGGER.debug("Upload cancelled after %d file(s)", len(completed))
                if on_cancelled:
                    self._dispatch(lambda: on_cancelled(completed))
            except Exception as exc:
                self._report_error(f"upload to {bucket_name}/{prefix}", exc, on_error)
            else:
                if on_success:
                    self._dispatch(lambda: on_success(uploaded))
            finally:
                if on_done:
                    self._dispatch(on_done)

        self._runner(task)

    def download_object(
        self,
        *,
        bucket_name: str,
        key: str,
        destination: str,
        on_progress: Callable[[int], None] | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        on_success: DoneFn | None = None,
        on_error: ErrorFn | None = None,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        progress_callback = None
        if on_progress:
            progress_callback = lambda total: self._dispatch(lambda: on_progress(total))

        def task() -> None:
            try:
                self._controller.download_object(
                    bucket_name=bucket_name,
                    key=key,
                    destination=destination,
                    progress_callback=progress_callback,
                    cancel_requested=cancel_requested,
                )
            except TransferCancelledError as exc:
                message = _format_error(exc)
                if on_cancelled:
                    self._dispatch(lambda: on_cancelled(message))
            except Exception as exc:
                self._report_error(f"download {bucket_name}/{key}", exc, on_error)
            else:
                if on_success:
                    self._dispatch(on_success)
            finally:
                if on_done:
                    self._dispatch(on_done)

        self._runner(task)

    def _submit(
        self,
        label: str,
        work: Callable[[], object],
        on_success: SuccessFn,
        on_error: ErrorFn | None,
        on_done: DoneFn | None = None,
    ) -> None:
        def task() -> None:
            try:
                result = work()
            except Exception as exc:
                self._report_error(label, exc, on_error)
            else:
                LOGGER.debug("Finished: %s", label)
                self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        self._runner(task)

    def _report_error(self, label: str, exc: Exception, on_error: ErrorFn | None) -> None:
        if isinstance(exc, RemoteError):
            LOGGER.warning("Failed to %s: %s", label, exc)
        else:
            LOGGER.exception("Unexpected error while trying to %s", label)
        message = _format_error(exc)
        if isinstance(exc, RemoteError) and exc.is_auth_error and self._on_auth_failure:
            self._dispatch(lambda: self._on_auth_failure(message))
        if on_error:
            self._dispatch(lambda: on_error(message))

    def _build_tracker(
        self,
        on_progress: Callable[[ProgressUpdate], None] | None,
        token: CancellationToken | None,
    ) -> ProgressTracker | None:
        if not on_progress:
            return None
        return ProgressTracker(lambda update: self._dispatch(lambda: on_progress(update)), token)
