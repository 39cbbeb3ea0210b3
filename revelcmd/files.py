"""File system helpers: copying trees, rendering templates and archiving."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import tarfile
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from .environment import reduced_env
from .errors import BuildError, NoAppError, NoRevelError, new_build_if_error

log = logging.getLogger("revelcmd")

REVEL_IMPORT_PATH = "github.com/wiselike/revel"
TEMPLATE_SUFFIX = ".template"

_ACTION = re.compile(r"\{\{(-?)\s*(.*?)\s*(-?)\}\}", re.DOTALL)
_FIELD_CHAIN = re.compile(r"^\.[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_HTML_ESCAPES = {
    "\0": "\ufffd",
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "+": "&#43;",
    "<": "&lt;",
    ">": "&gt;",
}


def dir_exists(filename: str | os.PathLike[str]) -> bool:
    """Return True if the path exists and is a directory."""
    return os.path.isdir(filename)


def exists(filename: str | os.PathLike[str]) -> bool:
    """Return True if the path exists."""
    return os.path.exists(filename)


def empty(dirname: str | os.PathLike[str]) -> bool:
    """Return True if the directory is empty or does not exist."""
    if not dir_exists(dirname):
        return True
    try:
        with os.scandir(dirname) as entries:
            return next(entries, None) is None
    except OSError as exc:
        log.info("error opening directory: %s", exc)
        return False


def read_lines(filename: str | os.PathLike[str]) -> list[str]:
    """Return the lines of a file, split on newlines."""
    with open(filename, encoding="utf-8", errors="replace", newline="") as handle:
        return handle.read().split("\n")


def copy_file(dest_filename: str | os.PathLike[str], src_filename: str | os.PathLike[str]) -> None:
    """Copy one file's content to another, raising BuildError on failure."""
    try:
        dest = open(dest_filename, "wb")
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to create file", "file", str(dest_filename)) from exc
    with dest:
        try:
            src = open(src_filename, "rb")
        except OSError as exc:
            raise new_build_if_error(exc, "Failed to open file", "file", str(src_filename)) from exc
        with src:
            try:
                shutil.copyfileobj(src, dest)
            except OSError as exc:
                raise new_build_if_error(
                    exc, "Failed to copy data",
                    "fromfile", str(src_filename), "tofile", str(dest_filename),
                ) from exc


def _escape(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def _lookup(data: Any, name: str) -> Any:
    if data is None:
        return None
    if isinstance(data, Mapping):
        return data.get(name)
    if hasattr(data, name):
        return getattr(data, name)
    return getattr(data, _CAMEL_BOUNDARY.sub("_", name).lower(), None)


def render_text(template_source: str, data: Any) -> str:
    """Render a template holding ``{{.Field}}`` actions against ``data``.

    Values are HTML-escaped; missing fields render as nothing. Any other
    kind of action raises BuildError.
    """
    pieces: list[str] = []
    position = 0
    trim_next = False
    for match in _ACTION.finditer(template_source):
        text = template_source[position:match.start()]
        if trim_next:
            text = text.lstrip()
        if match.group(1):
            text = text.rstrip()
        pieces.append(text)
        action = match.group(2)
        if action.startswith("/*") and action.endswith("*/"):
            pass
        elif action == ".":
            pieces.append(_escape(data))
        elif _FIELD_CHAIN.match(action):
            value = data
            for name in action[1:].split("."):
                value = _lookup(value, name)
            pieces.append(_escape(value))
        else:
            raise BuildError("ExecuteTemplate: Execute failed", "action", action)
        trim_next = bool(match.group(3))
        position = match.end()
    tail = template_source[position:]
    pieces.append(tail.lstrip() if trim_next else tail)
    return "".join(pieces)


def generate_template(
    filename: str | os.PathLike[str], template_source: str, args: Mapping[str, Any] | None
) -> None:
    """Render a template and write it to ``filename``, creating parent directories."""
    source = render_text(template_source, args)
    parent = os.path.dirname(os.fspath(filename))
    if parent and not dir_exists(parent):
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            raise new_build_if_error(exc, "Failed to make directory", "dir", parent) from exc
    try:
        with open(filename, "w", encoding="utf-8", newline="") as handle:
            handle.write(source)
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to create file", "file", str(filename)) from exc


def render_template(
    dest_path: str | os.PathLike[str], src_path: str | os.PathLike[str], data: Any
) -> None:
    """Render the template file at ``src_path`` into ``dest_path``."""
    try:
        with open(src_path, encoding="utf-8", newline="") as handle:
            source = handle.read()
    except OSError as exc:
        raise new_build_if_error(exc, f"Failed to parse template {src_path}") from exc
    try:
        rendered = render_text(source, data)
    except BuildError as exc:
        raise new_build_if_error(exc, f"Failed to Render template {src_path}") from exc
    try:
        with open(dest_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(rendered)
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to create  ", "path", str(dest_path)) from exc


def _walk_tree(
    real: str, shown: str, prune: Callable[[str], bool] | None = None
) -> Iterator[tuple[str, bool]]:
    is_dir = os.path.isdir(real)
    yield shown, is_dir
    if not is_dir:
        return
    for name in sorted(os.listdir(real)):
        child_shown = os.path.join(shown, name)
        if prune is not None and prune(child_shown):
            continue
        child_real = os.path.join(real, name)
        if os.path.islink(child_real):
            child_real = os.path.realpath(child_real)
        yield from _walk_tree(child_real, child_shown, prune)


def walk(root: str | os.PathLike[str]) -> Iterator[str]:
    """Yield every path under ``root`` in lexical order, following symlinks."""
    root_text = os.fspath(root)
    real = os.path.realpath(root_text) if os.path.islink(root_text) else root_text
    for path, _is_dir in _walk_tree(real, root_text):
        yield path


def _relative(path: str, base: str) -> str:
    return path[len(base):].lstrip(os.sep)


def copy_dir(
    dest_dir: str | os.PathLike[str],
    src_dir: str | os.PathLike[str],
    data: Mapping[str, Any] | None,
) -> None:
    """Copy a tree, rendering ``*.template`` files and skipping dot entries.

    Nothing happens when ``src_dir`` does not exist.
    """
    src_text = os.fspath(src_dir)
    dest_text = os.fspath(dest_dir)
    if not dir_exists(src_text):
        return
    real = os.path.realpath(src_text) if os.path.islink(src_text) else src_text
    skip_dot = lambda path: _relative(path, src_text).startswith(".")  # noqa: E731
    for src_path, is_dir in _walk_tree(real, src_text, skip_dot):
        rel = _relative(src_path, src_text)
        dest_path = os.path.join(dest_text, rel) if rel else dest_text
        if is_dir:
            try:
                os.makedirs(dest_path, exist_ok=True)
            except OSError as exc:
                raise new_build_if_error(
                    exc, "Failed to create directory", "path", f"{dest_text}/{rel}"
                ) from exc
        elif rel.endswith(TEMPLATE_SUFFIX):
            render_template(dest_path[: -len(TEMPLATE_SUFFIX)], src_path, data)
        else:
            copy_file(dest_path, src_path)


def tar_gz_dir(dest_filename: str | os.PathLike[str], src_dir: str | os.PathLike[str]) -> str:
    """Write every file under ``src_dir`` into a gzip-compressed tar archive."""
    src_text = os.fspath(src_dir)
    dest_text = os.fspath(dest_filename)
    try:
        archive = tarfile.open(dest_text, "w:gz")
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to create archive", "file", dest_text) from exc
    with archive:
        real = os.path.realpath(src_text) if os.path.islink(src_text) else src_text
        for src_path, is_dir in _walk_tree(real, src_text):
            if is_dir:
                continue
            name = _relative(src_path, src_text).replace(os.sep, "/")
            try:
                with open(src_path, "rb") as handle:
                    info = archive.gettarinfo(arcname=name, fileobj=handle)
                    info.uid = info.gid = 0
                    info.uname = info.gname = ""
                    archive.addfile(info, handle)
            except OSError as exc:
                raise new_build_if_error(exc, "Failed to copy file", "file", src_path) from exc
    return dest_text


def _go_list(app_path: str, package_list: list[str]) -> list[dict[str, Any]]:
    command = ["go", "list", "-e", "-json", *package_list]
    try:
        result = subprocess.run(
            command, cwd=app_path, env=reduced_env(False),
            capture_output=True, text=True, check=False,
        )
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to load packages", "packages", package_list) from exc
    decoder = json.JSONDecoder()
    text = result.stdout or ""
    packages: list[dict[str, Any]] = []
    position = 0
    while True:
        while position < len(text) and text[position].isspace():
            position += 1
        if position >= len(text):
            break
        item, position = decoder.raw_decode(text, position)
        packages.append(item)
    return packages


def _find_src_paths(app_path: str, package_list: list[str]) -> tuple[dict[str, str], list[str]]:
    loaded = _go_list(app_path, package_list)
    paths: dict[str, str] = {}
    missing: list[str] = []
    for name in package_list:
        found = False
        for package in loaded:
            if package.get("ImportPath") != name:
                continue
            if package.get("Error"):
                log.warning("Package %s reported errors: %s", name, package["Error"])
            if package.get("GoFiles"):
                paths[name] = package.get("Dir", "")
                found = True
        if not found:
            missing.append(name)
    return paths, missing


def find_src_paths(
    app_path: str,
    package_list: list[str],
    package_resolver: Callable[[str], None] | None,
) -> dict[str, str]:
    """Map each import path to its source directory.

    Missing packages are handed to ``package_resolver`` and searched for once
    more; any still missing raise NoRevelError or NoAppError.
    """
    paths, missing = _find_src_paths(app_path, list(package_list))
    if missing and package_resolver is not None:
        log.info("Failed to find package, calling resolver for %s", missing)
        for item in missing:
            package_resolver(item)
        paths, missing = _find_src_paths(app_path, list(package_list))
    if missing:
        for name in missing:
            log.error("Unable to import this package %s", name)
        if missing[-1] == REVEL_IMPORT_PATH:
            raise NoRevelError()
        raise NoAppError()
    return paths


def strip_module_path(pkg_name: str) -> str:
    """Return the first three elements of an import path."""
    parts = pkg_name.strip().lstrip("/").split("/")
    if len(parts) < 3:
        raise ValueError(
            f"path({parts!r}) too short of pkgName(`{pkg_name}`), need at least 3 parts"
        )
    return "/".join(parts[:3])