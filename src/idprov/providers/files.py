"""File and template providers."""

from __future__ import annotations

import grp
import os
import pwd
import shutil
import tempfile
from pathlib import Path
from typing import Any

import structlog

from idprov.core.errors import ApplyError
from idprov.providers.base import PlanChange, PlanResult, ResourceProvider, diff_fields
from idprov.providers.registry import register_provider
from idprov.resources.base import Resource

logger = structlog.get_logger()


def normalize_mode(mode: str | int | None) -> str | None:
    """``0644``, ``"644"`` and ``0o644`` all become ``"0644"``."""
    if mode is None:
        return None
    value = mode if isinstance(mode, int) else int(str(mode), 8)
    return f"{value:04o}"


class FileProvider(ResourceProvider):
    """
    Manage a file's content, mode and ownership.

    ``create`` converges every declared field, ``create_if_missing`` only
    creates an absent file and never touches an existing one.
    """

    resource_type = "file"
    actions = frozenset({"create", "create_if_missing", "delete"})

    @staticmethod
    def path(resource: Resource) -> Path:
        return Path(resource.get("path") or resource.name)

    def desired_content(self, resource: Resource) -> str | None:
        return resource.get("content")

    def desired_state(self, resource: Resource) -> dict[str, Any]:
        return {
            "content": self.desired_content(resource),
            "mode": normalize_mode(resource.get("mode")),
            "owner": resource.get("owner"),
            "group": resource.get("group"),
        }

    def load_current_state(self, resource: Resource) -> dict[str, Any] | None:
        path = self.path(resource)
        if not path.exists():
            return None
        stat = path.stat()
        try:
            content: str | None = path.read_text()
        except (UnicodeDecodeError, IsADirectoryError):
            content = None
        return {
            "content": content,
            "mode": normalize_mode(stat.st_mode & 0o7777),
            "owner": _user_name(stat.st_uid),
            "group": _group_name(stat.st_gid),
        }

    def compute_diff(self, resource: Resource, current: dict[str, Any] | None) -> PlanResult:
        path = str(self.path(resource))
        if resource.action == "delete":
            if current is None:
                return PlanResult([])
            return PlanResult([PlanChange("delete", {"path": path})])

        if current is None:
            return PlanResult([PlanChange("create", {"path": path})])
        if resource.action == "create_if_missing":
            return PlanResult([])

        desired = self.desired_state(resource)
        changes = diff_fields(desired, current, ("mode", "owner", "group"))
        content = desired["content"]
        if content is not None and current.get("content") != content:
            changes.append(PlanChange("update", {"field": "content", "path": path}))
        return PlanResult(changes)

    def apply(self, resource: Resource) -> None:
        path = self.path(resource)
        try:
            if resource.action == "delete":
                path.unlink(missing_ok=True)
            else:
                self._write(path, self.desired_state(resource))
        except OSError as exc:
            raise ApplyError(f"Could not write {path}", {"error": str(exc)}) from exc
        logger.info("file_changed", path=str(path), action=resource.action)

    def _write(self, path: Path, desired: dict[str, Any]) -> None:
        content = desired["content"]
        if content is not None or not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(content or "")
                if path.exists():
                    shutil.copymode(path, tmp_name)
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        if desired["mode"] is not None:
            path.chmod(int(desired["mode"], 8))
        if desired["owner"] is not None or desired["group"] is not None:
            shutil.chown(path, user=desired["owner"], group=desired["group"])


class TemplateProvider(FileProvider):
    """A file whose content is rendered from ``source`` with ``variables``."""

    resource_type = "template"
    actions = frozenset({"create", "create_if_missing"})

    def desired_content(self, resource: Resource) -> str | None:
        return self._ctx.renderer.render(resource.require("source"), resource.get("variables") or {})


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


register_provider("file", FileProvider, description="local files")
register_provider("template", TemplateProvider, description="files rendered from Jinja2 templates")

__all__ = ["FileProvider", "TemplateProvider", "normalize_mode"]
