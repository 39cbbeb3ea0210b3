"""Building a deployable application tree and packaging it as an archive."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable, Mapping

from .errors import BuildError, new_build_if_error
from .files import copy_dir, empty, exists, generate_template, tar_gz_dir

log = logging.getLogger("revelcmd")

DEFAULT_PACKAGE_FOLDERS = "conf,public,app/views"
MODULE_PREFIX = "module."
RUN_SCRIPT = "run.sh"
RUN_BATCH = "run.bat"

PACKAGE_RUN_SH = """#!/bin/sh

SCRIPTPATH=$(cd "$(dirname "$0")"; pwd)
"$SCRIPTPATH/{{.BinName}}" -importPath {{.ImportPath}} -srcPath "$SCRIPTPATH/src" -runMode {{.Mode}}
"""

PACKAGE_RUN_BAT = """@echo off

{{.BinName}} -importPath {{.ImportPath}} -srcPath "%CD%\\src" -runMode {{.Mode}}
"""


def build_safety_check(dest_path: str | os.PathLike[str]) -> None:
    """Prepare an empty target directory, refusing to clobber anything but a previous build."""
    dest = os.fspath(dest_path)
    if exists(dest) and not empty(dest) and not exists(os.path.join(dest, RUN_SCRIPT)):
        raise BuildError(
            "Abort: %s exists and does not look like a build directory.", "path", dest
        )
    try:
        if os.path.isdir(dest) and not os.path.islink(dest):
            shutil.rmtree(dest)
        elif os.path.lexists(dest):
            os.remove(dest)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise new_build_if_error(exc, "Remove all error", "path", dest) from exc
    try:
        os.makedirs(dest, exist_ok=True)
    except OSError as exc:
        raise new_build_if_error(exc, "MkDir all error", "path", dest) from exc


def parse_package_folders(value: str | None = None) -> list[str]:
    """Split the comma separated ``package.folders`` setting into file system paths."""
    text = DEFAULT_PACKAGE_FOLDERS if value is None else value
    return [os.path.normpath(part.strip().replace("/", os.sep)) for part in text.split(",")]


def module_import_list(sections: Mapping[str, Mapping[str, str]], mode: str = "") -> list[str]:
    """Collect the import paths of ``module.*`` options.

    When ``mode`` is set only the section of that name is considered.
    """
    modules: list[str] = []
    for section, options in sections.items():
        if mode and mode != section:
            continue
        for key, value in options.items():
            if key.startswith(MODULE_PREFIX) and value:
                modules.append(value)
    return modules


def copy_package_folders(
    dest_dir: str | os.PathLike[str],
    src_dir: str | os.PathLike[str],
    folders: Iterable[str],
    copy_source: bool,
) -> None:
    """Copy the whole source tree, or only the listed folders, into ``dest_dir``."""
    if copy_source:
        copy_dir(dest_dir, src_dir, None)
        return
    for folder in folders:
        copy_dir(os.path.join(dest_dir, folder), os.path.join(src_dir, folder), None)


def write_run_scripts(
    target_path: str | os.PathLike[str], bin_name: str, import_path: str, mode: str
) -> None:
    """Write the shell and batch scripts that start the built application."""
    data = {"BinName": bin_name, "ImportPath": import_path, "Mode": mode}
    script = os.path.join(target_path, RUN_SCRIPT)
    generate_template(script, PACKAGE_RUN_SH, data)
    try:
        os.chmod(script, 0o755)
    except OSError as exc:
        raise new_build_if_error(exc, "Failed to chmod", "file", script) from exc
    generate_template(os.path.join(target_path, RUN_BATCH), PACKAGE_RUN_BAT, data)
    print("Your application has been built in:", os.fspath(target_path))


def package_archive_path(app_path: str, base_path: str, target_path: str = "") -> str:
    """Return where the package archive is written.

    Without ``target_path`` it is ``<app name>.tar.gz`` inside the application;
    a relative ``target_path`` is taken relative to the application.
    """
    if not target_path:
        return os.path.join(app_path, os.path.basename(base_path) + ".tar.gz")
    if os.path.isabs(target_path):
        return target_path
    return os.path.join(app_path, target_path)


def package_directory(dest_file: str | os.PathLike[str], src_dir: str | os.PathLike[str]) -> str:
    """Replace ``dest_file`` with a gzip tar archive of ``src_dir`` and return its name."""
    dest = os.fspath(dest_file)
    try:
        os.remove(dest)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise BuildError("Unable to remove target file", "error", str(exc), "file", dest) from exc
    name = tar_gz_dir(dest, src_dir)
    print("Your archive is ready:", name)
    return name