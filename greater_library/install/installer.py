"""Component installer.

Drives one install through Resolving -> Fetching -> Verifying ->
Transforming -> Writing -> Done; any error moves it to Failed and
propagates. Every check that can fail runs for all components before the
first file is written:

- every destination is confined to the project root
- in offline mode every needed file must already be cached
- every fetched file must match its registry checksum

Components are written in dependency order and each component's record is
saved only after all of its files are on disk.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from greater_library.config.components import ComponentConfig
from greater_library.errors import CacheError
from greater_library.errors import GreaterError
from greater_library.errors import MissingComponentError
from greater_library.errors import WriteError
from greater_library.fetch.git_fetch import GitFetcher
from greater_library.fetch.git_fetch import is_immutable_ref
from greater_library.fetch.offline import OfflineManager
from greater_library.registry.index_client import RegistryIndexClient
from greater_library.registry.models import RegistryComponent
from greater_library.registry.models import RegistryIndex
from greater_library.resolver.dependency_resolver import resolve
from greater_library.security.audit import AuditAction
from greater_library.security.audit import AuditLog
from greater_library.security.integrity import compute_checksum
from greater_library.security.integrity import raise_for_failures
from greater_library.security.integrity import verify_multiple_checksums
from greater_library.security.path_safety import resolve_path_within_dir
from greater_library.transform.imports import PathMapping
from greater_library.transform.imports import TransformResult
from greater_library.transform.imports import build_path_mappings
from greater_library.transform.imports import detect_file_kind
from greater_library.transform.imports import get_transform_summary
from greater_library.transform.imports import transform_imports
from greater_library.transform.imports import transform_path

from .diff import DiffResult
from .diff import compute_diff
from .models import ComponentInstallResult
from .models import FilePlan
from .models import InstallReport
from .models import InstallState
from .models import InstalledComponent
from .models import InstalledFile
from .models import UpdateInfo
from .state_store import InstalledStateStore

logger = logging.getLogger(__name__)


class Installer:
    """Installs registry components into a project."""

    def __init__(
        self,
        project_root: Path,
        config: ComponentConfig,
        fetcher: GitFetcher,
        index_client: RegistryIndexClient,
        offline: OfflineManager,
        state_store: InstalledStateStore | None = None,
        audit_log: AuditLog | None = None,
    ) -> None:
        """Initialize installer.

        Args:
            project_root: Consumer project root; nothing is written outside it
            config: Project configuration (aliases)
            fetcher: File fetcher
            index_client: Registry index client
            offline: Offline manager
            state_store: Installed-state store. Defaults to the project's store
            audit_log: Audit log. Defaults to $GREATER_HOME/audit.log
        """
        self.project_root = Path(project_root).resolve()
        self.config = config
        self.fetcher = fetcher
        self.index_client = index_client
        self.offline = offline
        self.state_store = state_store or InstalledStateStore(self.project_root)
        self.audit_log = audit_log or AuditLog()
        self.state = InstallState.DONE
        self.mappings: list[PathMapping] = build_path_mappings(config)

    def _transition(self, state: InstallState) -> None:
        logger.debug(f"Install state: {self.state.value} -> {state.value}")
        self.state = state

    async def _resolve_fetch_ref(self, ref: str) -> str:
        """Ref files are fetched and cached under.

        A floating ref cannot be resolved to a commit without the network,
        so offline installs require a tag or commit SHA.
        """
        if self.offline.is_offline and self.fetcher.local_repo_root is None:
            if not is_immutable_ref(ref):
                raise CacheError(f"Cannot resolve floating ref '{ref}' in offline mode; use a tag or commit SHA")
            return ref
        return await self.fetcher.resolve_ref_for_fetch(ref)

    def _target_for(self, registry_path: str) -> tuple[str, Path]:
        target = transform_path(registry_path, self.mappings)
        return target, resolve_path_within_dir(self.project_root, target)

    def _preflight(self, components: list[RegistryComponent], fetch_ref: str) -> list[str]:
        """Validate destinations and cache coverage before any mutation.

        Returns:
            Unique registry paths to fetch, in installation order

        Raises:
            PathTraversalError: If any destination escapes the project
            CacheError: If offline and any file is not cached
        """
        paths: list[str] = []
        for component in components:
            for file in component.files:
                self._target_for(file.path)
                if file.path not in paths:
                    paths.append(file.path)

        if self.offline.is_offline and self.fetcher.local_repo_root is None:
            missing = self.offline.get_missing_from_cache(fetch_ref, paths)
            if missing:
                raise CacheError(
                    f"Offline mode: {len(missing)} file(s) missing from cache at {fetch_ref}: {', '.join(missing)}",
                    missing=missing,
                )
        return paths

    def _transform(self, registry_path: str, content: bytes) -> tuple[bytes, TransformResult | None]:
        kind = detect_file_kind(registry_path)
        if kind is None:
            return content, None
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            return content, None
        result = transform_imports(text, self.mappings, kind)
        if not result.has_changes:
            return content, result
        return result.content.encode("utf-8"), result

    def _plan_file(self, component: str, registry_path: str, source_checksum: str, content: bytes) -> tuple[FilePlan, TransformResult | None]:
        new_content, result = self._transform(registry_path, content)
        target, absolute = self._target_for(registry_path)
        plan = FilePlan(
            source_path=registry_path,
            target_path=target,
            absolute_path=absolute,
            content=new_content,
            checksum=compute_checksum(new_content),
            transformed_imports=result.transformed_count if result else 0,
            source_checksum=source_checksum,
        )

        if not absolute.exists():
            plan.status = "create"
            return plan, result

        current = compute_checksum(absolute.read_bytes())
        record = self.state_store.get(component)
        recorded = record.checksum_for(target) if record else None

        if current == plan.checksum:
            plan.status = "unchanged"
        elif recorded is not None and current == recorded:
            plan.status = "update"
        else:
            plan.status = "conflict"
        return plan, result

    async def _fetch_and_verify(
        self,
        components: list[RegistryComponent],
        fetch_ref: str,
        paths: list[str],
        skip_verification: bool,
    ) -> dict[str, bytes]:
        self._transition(InstallState.FETCHING)
        batch = await self.fetcher.fetch_multiple_from_git_tag(fetch_ref, paths)
        batch.raise_for_failures()

        self._transition(InstallState.VERIFYING)
        checksums = {file.path: file.checksum for component in components for file in component.files}
        results = verify_multiple_checksums(batch.contents, checksums)
        if skip_verification:
            failed = [r.path for r in results if not r.passed]
            if failed:
                self.audit_log.log_security_warning(
                    f"Checksum verification skipped with {len(failed)} mismatching file(s)",
                    details={"files": failed, "ref": fetch_ref},
                )
        else:
            raise_for_failures(results)
        return batch.contents

    def _write_file(self, component: str, plan: FilePlan) -> None:
        # Re-check confinement right before the write
        absolute = resolve_path_within_dir(self.project_root, plan.target_path)
        temp_path = absolute.with_name(f".{absolute.name}.{uuid.uuid4().hex}.tmp")
        try:
            absolute.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(plan.content)
            os.replace(temp_path, absolute)
        except OSError as e:
            if temp_path.is_file():
                temp_path.unlink()
            raise WriteError(
                f"Failed to write {plan.target_path} for {component}: {e}",
                path=plan.target_path,
                component=component,
            ) from e
        logger.debug(f"Wrote {plan.target_path}")

    async def install(
        self,
        names: list[str],
        ref: str,
        dry_run: bool = False,
        force: bool = False,
        skip_verification: bool = False,
        action: AuditAction = "install",
    ) -> InstallReport:
        """Install components and their dependencies.

        Args:
            names: Requested component names
            ref: Registry ref (tag, branch or commit SHA)
            dry_run: Plan everything but write nothing
            force: Overwrite locally modified files
            skip_verification: Install even if checksums do not match
            action: Audit action recorded per component (install or update)

        Returns:
            InstallReport; components with conflicts are reported, not written

        Raises:
            GreaterError: Any failure; the install is left in the failed state
        """
        report = InstallReport(ref=ref, dry_run=dry_run)
        self._transition(InstallState.RESOLVING)

        try:
            fetch_ref = await self._resolve_fetch_ref(ref)
            # Index and files must come from the same commit
            index = await self.index_client.fetch_registry_index(fetch_ref)
            resolution = resolve(names, index)
            report.npm_dependencies = resolution.npm_dependencies
            report.npm_dev_dependencies = resolution.npm_dev_dependencies
            report.package_conflicts = [c.message for c in resolution.conflicts]

            components = [r.component for r in resolution.components]
            paths = self._preflight(components, fetch_ref)
            contents = await self._fetch_and_verify(components, fetch_ref, paths, skip_verification)

            self._transition(InstallState.TRANSFORMING)
            transform_results: list[TransformResult] = []
            for component in components:
                result = ComponentInstallResult(name=component.name, status="planned")
                for file in component.files:
                    plan, transformed = self._plan_file(component.name, file.path, file.checksum, contents[file.path])
                    if plan.status == "conflict" and force:
                        self.audit_log.log_security_warning(
                            f"Force overwriting locally modified file: {plan.target_path}",
                            details={"component": component.name, "file": plan.target_path},
                        )
                        plan.status = "update"
                    result.files.append(plan)
                    if transformed is not None:
                        transform_results.append(transformed)
                report.components.append(result)
            report.transform_message = get_transform_summary(transform_results).message

            self._transition(InstallState.WRITING)
            by_name = {c.name: c for c in components}
            for result in report.components:
                self._write_component(by_name[result.name], result, fetch_ref, dry_run, skip_verification, action)

            self._transition(InstallState.DONE)
            report.state = InstallState.DONE
            return report

        except GreaterError as e:
            self._transition(InstallState.FAILED)
            report.state = InstallState.FAILED
            report.error = str(e)
            logger.error(f"Install failed: {e}")
            if not dry_run:
                self.audit_log.log_failure(action, e, component=",".join(names), ref=ref)
            raise

    def _write_component(
        self,
        component: RegistryComponent,
        result: ComponentInstallResult,
        fetch_ref: str,
        dry_run: bool,
        skip_verification: bool,
        action: AuditAction,
    ) -> None:
        if result.conflicts:
            result.status = "conflict"
            logger.warning(f"Not installing {component.name}: locally modified file(s) {', '.join(result.conflicts)}")
            return

        previous = self.state_store.get(component.name)
        if not result.written:
            result.status = "up_to_date"
        elif previous is not None:
            result.status = "updated"
        else:
            result.status = "installed"

        if dry_run:
            return

        for plan in result.files:
            if plan.status in ("create", "update"):
                self._write_file(component.name, plan)

        record = InstalledComponent(
            name=component.name,
            ref=fetch_ref,
            version=component.version,
            files=[
                InstalledFile(
                    path=plan.target_path,
                    checksum=plan.checksum,
                    source_path=plan.source_path,
                    source_checksum=plan.source_checksum,
                )
                for plan in result.files
            ],
        )
        if result.status == "up_to_date" and previous is not None and _same_files(previous, record):
            return

        try:
            self.state_store.save(record)
        except RuntimeError as e:
            raise WriteError(f"Failed to record {component.name}: {e}", component=component.name) from e
        self.audit_log.log_installation(
            component.name,
            fetch_ref,
            {plan.target_path: plan.checksum for plan in result.files},
            verified=not skip_verification,
            action=action,
        )
        logger.info(f"{result.status.replace('_', ' ').capitalize()}: {component.name} ({len(result.written)} file(s) written)")

    async def check_updates(self, ref: str, names: list[str] | None = None) -> list[UpdateInfo]:
        """Compare installed components with the registry at ref.

        Args:
            ref: Registry ref to compare against
            names: Installed components to check (default: all)

        Returns:
            One UpdateInfo per installed component checked
        """
        fetch_ref = await self._resolve_fetch_ref(ref)
        index = await self.index_client.fetch_registry_index(fetch_ref)
        installed = self.state_store.list()
        if names:
            installed = [c for c in installed if c.name in names]

        infos = []
        for record in installed:
            component = index.components.get(record.name)
            if component is None:
                infos.append(
                    UpdateInfo(
                        name=record.name,
                        installed_ref=record.ref,
                        installed_version=record.version,
                        available_version=None,
                        changed_files=[],
                        missing_from_registry=True,
                    )
                )
                continue

            recorded = {f.source_path: f.source_checksum for f in record.files if f.source_path}
            changed = [file.path for file in component.files if recorded.get(file.path) != file.checksum]
            changed += [path for path in recorded if path not in {file.path for file in component.files}]
            infos.append(
                UpdateInfo(
                    name=record.name,
                    installed_ref=record.ref,
                    installed_version=record.version,
                    available_version=component.version,
                    changed_files=changed,
                )
            )
        return infos

    async def update(
        self,
        ref: str,
        names: list[str] | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> InstallReport:
        """Re-install installed components whose registry files changed.

        Returns:
            InstallReport; empty (state done) when everything is current
        """
        if names:
            unknown = [name for name in names if not self.state_store.is_installed(name)]
            if unknown:
                raise MissingComponentError(unknown[0], required_by="update (not installed)")

        infos = await self.check_updates(ref, names)
        for info in infos:
            if info.missing_from_registry:
                logger.warning(f"{info.name} is no longer in the registry at {ref}")

        outdated = [info.name for info in infos if info.has_update]
        if not outdated:
            report = InstallReport(ref=ref, dry_run=dry_run, state=InstallState.DONE)
            report.transform_message = "All components are up to date"
            return report

        return await self.install(outdated, ref, dry_run=dry_run, force=force, action="update")

    async def diff_component(self, name: str, ref: str) -> list[DiffResult]:
        """Diff an installed component's files against the registry.

        Args:
            name: Installed component
            ref: Registry ref to compare against

        Returns:
            One DiffResult per registry file (missing local files diff from empty)

        Raises:
            MissingComponentError: If the component is not installed or not in the registry
        """
        if not self.state_store.is_installed(name):
            raise MissingComponentError(name, required_by="diff (not installed)")

        fetch_ref = await self._resolve_fetch_ref(ref)
        index: RegistryIndex = await self.index_client.fetch_registry_index(fetch_ref)
        component = index.components.get(name)
        if component is None:
            raise MissingComponentError(name, ref=ref)

        paths = self._preflight([component], fetch_ref)
        contents = await self._fetch_and_verify([component], fetch_ref, paths, skip_verification=False)

        diffs = []
        for file in component.files:
            new_content, _ = self._transform(file.path, contents[file.path])
            target, absolute = self._target_for(file.path)
            local = absolute.read_bytes() if absolute.exists() else b""
            diffs.append(compute_diff(local, new_content, path=target))
        self._transition(InstallState.DONE)
        return diffs


def _same_files(a: InstalledComponent, b: InstalledComponent) -> bool:
    return a.ref == b.ref and [f.to_dict() for f in a.files] == [f.to_dict() for f in b.files]
