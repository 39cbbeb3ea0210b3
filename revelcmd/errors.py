"""Error types raised while building and running applications."""

from __future__ import annotations

import logging
import re
import traceback
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger("revelcmd")

_COMPILE_ERROR = re.compile(r"^([^:#]+):(\d+):(\d+:)? (.*)$", re.MULTILINE)
_COMPILE_ERROR_FALLBACK = re.compile(r"^(.*?):(\d+):\s(.*?)$", re.MULTILINE)


class BuildError(Exception):
    """A failure in one of the build steps, carrying key/value details."""

    def __init__(self, message: str, *details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details: list[object] = list(details)
        self.stack = "".join(traceback.format_stack()[:-1])
        log.info("%s %s", message, self.details)

    def __str__(self) -> str:
        return f"{self.message}[{' '.join(str(d) for d in self.details)}]"


class NoAppError(LookupError):
    """The application package could not be found."""

    def __init__(self, message: str = "no app found") -> None:
        super().__init__(message)


class NoRevelError(LookupError):
    """The framework package could not be found."""

    def __init__(self, message: str = "no revel found") -> None:
        super().__init__(message)


@dataclass
class SourceLine:
    """One line of source shown around an error."""

    source: str
    line: int
    is_error: bool


@dataclass(eq=False)
class SourceError(Exception):
    """An error located in a source file, suitable for showing to the user."""

    source_type: str = ""
    title: str = ""
    path: str = ""
    description: str = ""
    line: int = 0
    column: int = 0
    source_lines: list[str] | None = None
    stack: str = ""
    meta_error: str = ""
    link: str = ""

    def set_link(self, error_link: str) -> None:
        """Wrap the error location in a link built from a configured pattern."""
        target = error_link.replace("{{Path}}", self.path).replace("{{Line}}", str(self.line))
        self.link = f"<a href={target}>{self.path}:{self.line}</a>"

    def context_source(self) -> list[SourceLine] | None:
        """Return the source lines surrounding the error line."""
        if self.source_lines is None:
            return None
        start = max(self.line - 1 - 5, 0)
        end = min(self.line - 1 + 5, len(self.source_lines))
        return [
            SourceLine(source, number, number == self.line)
            for number, source in enumerate(self.source_lines[start:end], start=start + 1)
        ]

    def __str__(self) -> str:
        loc = ""
        if self.path:
            line = f":{self.line}" if self.line else ""
            loc = f"(in {self.path}{line})"
        header = loc
        if self.title:
            header = f"{self.title} {loc}: " if loc else f"{self.title}: "
        return f"{header}{self.description}"


def new_build_if_error(err: BaseException | None, message: str, *args: object) -> BuildError | None:
    """Wrap ``err`` in a BuildError, or extend it if it already is one."""
    if err is None:
        return None
    if isinstance(err, BuildError):
        err.details.extend(args)
        return err
    return BuildError(message, *args, "error", str(err))


def new_compile_error(import_path: str, error_link: str, err: BaseException | str) -> SourceError:
    """Parse compiler output into a SourceError pointing at the offending line."""
    text = str(err)
    match = _COMPILE_ERROR.search(text)
    if match is not None:
        filename, line_text, description = match.group(1), match.group(2), match.group(4)
    else:
        match = _COMPILE_ERROR_FALLBACK.search(text)
        if match is None:
            log.error("Failed to parse build errors: %s", text)
            return SourceError(
                source_type="Go code",
                title="Go Compilation Error",
                description="See console for build error.",
            )
        filename, line_text, description = match.group(1), match.group(2), match.group(3)
        log.error("Build errors: %s", text)

    compile_error = SourceError(
        source_type="Go code",
        title="Go Compilation Error",
        path=filename,
        description=description,
        line=int(line_text),
    )
    if error_link:
        compile_error.set_link(error_link)

    try:
        content = Path(filename).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        compile_error.meta_error = f"{filename}: {exc}"
        log.info("Unable to read lines %s", compile_error.meta_error)
        return compile_error

    compile_error.source_lines = content.split("\n")
    return compile_error