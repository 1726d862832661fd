"""
macOS pkg adapter — hdiutil, installer and pkgutil.

Install action params:
    artifact (str): Path to the fetched artifact (.dmg, .pkg, or archive).
    target (str): Path of the .pkg inside the artifact.
    allow_untrusted (bool): Pass ``-allowUntrusted`` to installer.

Uninstall action params:
    uninstall (dict): ``pkgutil`` / ``delete`` / ``rmdir`` lists.
    cleanup (dict | None): ``trash`` / ``delete`` / ``rmdir`` lists (zap).
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any

from caskctl.adapters.base import Adapter, ExecutionContext
from caskctl.adapters.macos.runner import run_command
from caskctl.core.models.action import Receipt

logger = logging.getLogger(__name__)

PKG_SUFFIXES = {".pkg", ".mpkg"}
ARCHIVE_SUFFIXES = (".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")

# pkgutil lists these as owned directories for nearly every package
PROTECTED_DIRS = {
    "/", "/Applications", "/Library", "/Library/Fonts", "/Library/LaunchAgents",
    "/Library/LaunchDaemons", "/System", "/Users", "/private", "/usr", "/usr/local",
    "/usr/local/bin", "/opt",
}

RM_BATCH = 200


class PkgInstallerAdapter(Adapter):
    """Install and remove macOS installer packages."""

    @property
    def name(self) -> str:
        return "pkg"

    def is_available(self) -> bool:
        return all(shutil.which(tool) for tool in ("installer", "pkgutil", "hdiutil"))

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.params
        if context.operation == "install":
            artifact = params.get("artifact", "")
            if not artifact:
                return False, "Missing required param: 'artifact'"
            if not Path(artifact).exists():
                return False, f"Artifact does not exist: {artifact}"
            target = params.get("target", "")
            if not target:
                return False, "Missing required param: 'target'"
            if Path(target).is_absolute() or ".." in Path(target).parts:
                return False, f"Install target must stay inside the artifact: {target}"
            return True, ""

        uninstall = params.get("uninstall") or {}
        cleanup = params.get("cleanup") or {}
        if not any(uninstall.get(k) for k in ("pkgutil", "delete", "rmdir")) and not cleanup:
            return False, "Nothing to uninstall"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        try:
            if context.operation == "install":
                return self._install(context)
            return self._uninstall(context)
        except Exception as e:
            logger.exception("pkg adapter failed for %s", context.action.identifier)
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"pkg adapter error: {e}",
            )

    # ── Install ──────────────────────────────────────────────────

    def _install(self, ctx: ExecutionContext) -> Receipt:
        artifact = Path(ctx.params["artifact"])
        target = ctx.params["target"]
        mountpoint: Path | None = None

        try:
            if artifact.suffix.lower() == ".dmg":
                mountpoint = Path(tempfile.mkdtemp(prefix="caskctl-mnt-"))
                attach = run_command(
                    [
                        "hdiutil", "attach", "-nobrowse", "-readonly", "-noautoopen",
                        "-mountpoint", str(mountpoint), str(artifact),
                    ],
                    timeout=ctx.timeout,
                )
                if not attach["ok"]:
                    mountpoint.rmdir()
                    mountpoint = None
                    return self._failed(ctx, attach, "cannot mount disk image")
                root = mountpoint
            elif artifact.suffix.lower() in PKG_SUFFIXES:
                root = artifact.parent
                if artifact.name != target:
                    target = artifact.name
            elif artifact.name.lower().endswith(ARCHIVE_SUFFIXES):
                root = artifact.parent / "unpacked"
                shutil.unpack_archive(str(artifact), str(root))
            else:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Unsupported artifact type: {artifact.name}",
                )

            pkg_path = root / target
            if not pkg_path.exists():
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Install target not found in artifact: {target}",
                )

            cmd = ["installer", "-pkg", str(pkg_path), "-target", ctx.target_volume]
            if ctx.params.get("allow_untrusted"):
                cmd.append("-allowUntrusted")

            logger.info("Installing %s from %s", ctx.action.identifier, pkg_path.name)
            result = run_command(
                cmd,
                needs_sudo=ctx.use_sudo,
                sudo_password=ctx.sudo_password,
                timeout=ctx.timeout,
            )
            if not result["ok"]:
                return self._failed(ctx, result, "installer failed")

            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=result.get("stdout", "").strip(),
                return_code=0,
                stderr=result.get("stderr", ""),
                metadata={"pkg": str(pkg_path), "target_volume": ctx.target_volume},
            )
        finally:
            if mountpoint is not None:
                self._detach(mountpoint, ctx.timeout)

    def _detach(self, mountpoint: Path, timeout: int) -> None:
        result = run_command(["hdiutil", "detach", str(mountpoint), "-quiet"], timeout=timeout)
        if not result["ok"]:
            logger.warning("Could not detach %s: %s", mountpoint, result.get("stderr") or result.get("error"))
            return
        try:
            mountpoint.rmdir()
        except OSError:
            pass

    # ── Uninstall ────────────────────────────────────────────────

    def _uninstall(self, ctx: ExecutionContext) -> Receipt:
        uninstall: dict[str, list[str]] = ctx.params.get("uninstall") or {}
        cleanup: dict[str, list[str]] = ctx.params.get("cleanup") or {}
        removed: list[str] = []
        forgotten: list[str] = []

        for pkg_id in uninstall.get("pkgutil", []):
            result = self._remove_pkg(ctx, pkg_id, removed)
            if result is not None:
                return result
            forgotten.append(pkg_id)

        for path in [*uninstall.get("delete", []), *cleanup.get("delete", [])]:
            result = self._run(ctx, ["rm", "-rf", "--", _expand(path)])
            if not result["ok"]:
                return self._failed(ctx, result, f"cannot delete {path}")
            removed.append(_expand(path))

        for path in cleanup.get("trash", []):
            trashed = self._trash(Path(_expand(path)))
            if trashed:
                removed.append(trashed)

        for path in [*uninstall.get("rmdir", []), *cleanup.get("rmdir", [])]:
            if self._rmdir_if_empty(ctx, Path(_expand(path))):
                removed.append(_expand(path))

        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"removed {len(removed)} path(s), forgot {len(forgotten)} package(s)",
            return_code=0,
            metadata={"removed": removed, "forgotten": forgotten},
        )

    def _remove_pkg(self, ctx: ExecutionContext, pkg_id: str, removed: list[str]) -> Receipt | None:
        info = run_command(["pkgutil", "--pkg-info", pkg_id], timeout=ctx.timeout)
        if not info["ok"]:
            logger.warning("%s is not registered with pkgutil, skipping", pkg_id)
            return None
        base = _install_base(info.get("stdout", ""))

        files = run_command(["pkgutil", "--only-files", "--files", pkg_id], timeout=ctx.timeout)
        dirs = run_command(["pkgutil", "--only-dirs", "--files", pkg_id], timeout=ctx.timeout)
        if not files["ok"]:
            return self._failed(ctx, files, f"cannot list files of {pkg_id}")

        paths = [str(base / line) for line in files.get("stdout", "").splitlines() if line.strip()]
        for i in range(0, len(paths), RM_BATCH):
            batch = paths[i:i + RM_BATCH]
            result = self._run(ctx, ["rm", "-f", "--", *batch])
            if not result["ok"]:
                return self._failed(ctx, result, f"cannot remove files of {pkg_id}")
            removed.extend(batch)

        if dirs["ok"]:
            owned = [base / line for line in dirs.get("stdout", "").splitlines() if line.strip()]
            for directory in sorted(owned, key=lambda p: len(p.parts), reverse=True):
                self._rmdir_if_empty(ctx, directory)

        forget = self._run(ctx, ["pkgutil", "--forget", pkg_id])
        if not forget["ok"]:
            return self._failed(ctx, forget, f"cannot forget {pkg_id}")
        logger.info("Removed %d file(s) of %s", len(paths), pkg_id)
        return None

    def _rmdir_if_empty(self, ctx: ExecutionContext, directory: Path) -> bool:
        if str(directory) in PROTECTED_DIRS or not directory.is_dir():
            return False
        if any(directory.iterdir()):
            return False
        return bool(self._run(ctx, ["rmdir", "--", str(directory)])["ok"])

    def _trash(self, path: Path) -> str | None:
        if not path.exists():
            return None
        trash = Path.home() / ".Trash"
        trash.mkdir(exist_ok=True)
        destination = trash / path.name
        counter = 1
        while destination.exists():
            destination = trash / f"{path.name} {counter}"
            counter += 1
        shutil.move(str(path), str(destination))
        return str(path)

    def _run(self, ctx: ExecutionContext, cmd: list[str]) -> dict[str, Any]:
        return run_command(
            cmd,
            needs_sudo=ctx.use_sudo,
            sudo_password=ctx.sudo_password,
            timeout=ctx.timeout,
        )

    def _failed(self, ctx: ExecutionContext, result: dict[str, Any], what: str) -> Receipt:
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=f"{what}: {result.get('error', 'unknown error')}",
            return_code=result.get("returncode"),
            stderr=result.get("stderr", ""),
        )


def _expand(path: str) -> str:
    return str(Path(path).expanduser())


def _install_base(pkg_info: str) -> Path:
    """Volume + location from ``pkgutil --pkg-info`` output."""
    fields: dict[str, str] = {}
    for line in pkg_info.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    volume = fields.get("volume", "/") or "/"
    location = fields.get("location", "")
    return Path(volume) / location
