import pytest

from revelcmd.errors import (
    BuildError,
    NoAppError,
    NoRevelError,
    SourceError,
    SourceLine,
    new_build_if_error,
    new_compile_error,
)


def test_source_error_message_documented_example():
    err = SourceError(
        title="Compilation Error",
        path="views/header.html",
        line=51,
        description='expected right delim in end; got "}".',
    )
    assert str(err) == 'Compilation Error (in views/header.html:51): expected right delim in end; got "}".'


def test_source_error_message_without_title():
    err = SourceError(path="a.go", description="d")
    assert str(err) == "(in a.go)d"


def test_source_error_message_title_only():
    err = SourceError(title="T", description="d")
    assert str(err) == "T: d"


def test_set_link():
    err = SourceError(path="app.go", line=7)
    err.set_link("http://example.com/{{Path}}#{{Line}}")
    assert err.link == "<a href=http://example.com/app.go#7>app.go:7</a>"


def test_context_source_none_without_lines():
    assert SourceError(line=3).context_source() is None


def test_context_source_window():
    lines = [f"line {n}" for n in range(1, 21)]
    err = SourceError(line=10, source_lines=lines)
    context = err.context_source()
    assert [c.line for c in context] == list(range(5, 15))
    assert [c for c in context if c.is_error] == [SourceLine("line 10", 10, True)]
    assert all(c.source == f"line {c.line}" for c in context)


def test_context_source_start_clamped():
    lines = ["a", "b", "c"]
    context = SourceError(line=1, source_lines=lines).context_source()
    assert context[0] == SourceLine("a", 1, True)
    assert len(context) == 3


def test_build_error_str():
    assert str(BuildError("m", "path", "/x")) == "m[path /x]"


def test_new_build_if_error_none():
    assert new_build_if_error(None, "msg") is None


def test_new_build_if_error_wraps():
    err = new_build_if_error(ValueError("boom"), "failed", "file", "f.txt")
    assert isinstance(err, BuildError)
    assert err.message == "failed"
    assert err.details == ["file", "f.txt", "error", "boom"]


def test_new_build_if_error_extends_existing():
    original = BuildError("first", "a", 1)
    result = new_build_if_error(original, "ignored", "b", 2)
    assert result is original
    assert original.details == ["a", 1, "b", 2]


def test_compile_error_reads_source(tmp_path):
    source = tmp_path / "app.go"
    source.write_text("package app\n\nvar x = y\n")
    err = new_compile_error("app", "", f"{source}:3:9: undefined: y")
    assert err.path == str(source)
    assert err.line == 3
    assert err.description == "undefined: y"
    assert err.source_lines == source.read_text().split("\n")
    assert err.title == "Go Compilation Error"


def test_compile_error_fallback_pattern():
    err = new_compile_error("app", "", "#x:12: oops")
    assert err.path == "#x"
    assert err.line == 12
    assert err.description == "oops"


def test_compile_error_unparseable():
    err = new_compile_error("app", "", "nothing useful here")
    assert err.description == "See console for build error."
    assert err.path == ""


def test_compile_error_missing_file(tmp_path):
    missing = tmp_path / "gone.go"
    err = new_compile_error("app", "", f"{missing}:4: bad thing")
    assert err.meta_error.startswith(f"{missing}: ")
    assert err.source_lines is None


def test_compile_error_sets_link(tmp_path):
    missing = tmp_path / "gone.go"
    err = new_compile_error("app", "edit/{{Path}}/{{Line}}", f"{missing}:4: bad thing")
    assert err.link == f"<a href=edit/{missing}/4>{missing}:4</a>"


def test_lookup_errors_messages():
    assert str(NoAppError()) == "no app found"
    assert str(NoRevelError()) == "no revel found"
    with pytest.raises(LookupError):
        raise NoRevelError()