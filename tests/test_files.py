import json
import os
import subprocess
import tarfile
from unittest import mock

import pytest

from revelcmd import files
from revelcmd.errors import BuildError, NoAppError, NoRevelError


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _go_list_output(*packages):
    return subprocess.CompletedProcess(
        args=["go"], returncode=0, stdout="\n".join(json.dumps(p) for p in packages), stderr=""
    )


def test_exists_and_dir_exists(tmp_path):
    file_path = tmp_path / "f.txt"
    _write(file_path, "x")
    assert files.exists(file_path)
    assert files.dir_exists(tmp_path)
    assert not files.dir_exists(file_path)
    assert not files.exists(tmp_path / "missing")


def test_empty(tmp_path):
    assert files.empty(tmp_path / "missing")
    assert files.empty(tmp_path)
    _write(tmp_path / "f.txt", "x")
    assert not files.empty(tmp_path)


def test_read_lines(tmp_path):
    path = tmp_path / "lines.txt"
    _write(path, "first\nsecond\n")
    assert files.read_lines(path) == ["first", "second", ""]


def test_copy_file_round_trip(tmp_path):
    src = tmp_path / "src.bin"
    src.write_bytes(b"\x00\x01payload")
    dest = tmp_path / "dest.bin"
    files.copy_file(dest, src)
    assert dest.read_bytes() == src.read_bytes()


def test_copy_file_missing_source(tmp_path):
    with pytest.raises(BuildError):
        files.copy_file(tmp_path / "dest", tmp_path / "missing")


def test_render_text_fields():
    source = '"$SCRIPTPATH/{{.BinName}}" -importPath {{.ImportPath}} -runMode {{.Mode}}'
    data = {"BinName": "chat", "ImportPath": "my/chat", "Mode": "prod"}
    assert files.render_text(source, data) == '"$SCRIPTPATH/chat" -importPath my/chat -runMode prod'


def test_render_text_missing_field_is_blank():
    assert files.render_text("a{{.Nope}}b", {}) == "ab"


def test_render_text_escapes_and_booleans():
    assert files.render_text("{{.V}}", {"V": "a+b"}) == "a&#43;b"
    assert files.render_text("{{.Flag}}", {"Flag": True}) == "true"


def test_render_text_object_attributes():
    class Suite:
        name = "UserTest"

    assert files.render_text("{{.Name}}", Suite()) == "UserTest"


def test_render_text_unsupported_action():
    with pytest.raises(BuildError):
        files.render_text("{{range .Items}}x{{end}}", {"Items": []})


def test_generate_template_creates_directories(tmp_path):
    target = tmp_path / "deep" / "dir" / "run.sh"
    files.generate_template(target, "run {{.BinName}}", {"BinName": "app"})
    assert target.read_text(encoding="utf-8") == "run app"


def test_render_template(tmp_path):
    src = tmp_path / "in.template"
    _write(src, "name={{.AppName}}")
    dest = tmp_path / "out"
    files.render_template(dest, src, {"AppName": "hello"})
    assert dest.read_text(encoding="utf-8") == "name=hello"


def test_render_template_missing_source(tmp_path):
    with pytest.raises(BuildError):
        files.render_template(tmp_path / "out", tmp_path / "missing", {})


def test_copy_dir_renders_and_skips_dotfiles(tmp_path):
    skeleton = tmp_path / "skeleton"
    _write(skeleton / "conf" / "app.conf.template", "app.name = {{.AppName}}")
    _write(skeleton / "public" / "a.txt", "static")
    _write(skeleton / ".gitignore", "tmp/")
    _write(skeleton / ".hidden" / "x.txt", "hidden")
    dest = tmp_path / "app"

    files.copy_dir(dest, skeleton, {"AppName": "myapp"})

    assert (dest / "conf" / "app.conf").read_text(encoding="utf-8") == "app.name = myapp"
    assert not (dest / "conf" / "app.conf.template").exists()
    assert (dest / "public" / "a.txt").read_text(encoding="utf-8") == "static"
    assert not (dest / ".gitignore").exists()
    assert not (dest / ".hidden").exists()


def test_copy_dir_missing_source_does_nothing(tmp_path):
    dest = tmp_path / "dest"
    files.copy_dir(dest, tmp_path / "missing", None)
    assert not dest.exists()


def test_walk_order_and_symlinks(tmp_path):
    root = tmp_path / "root"
    _write(root / "b.txt", "b")
    _write(root / "a" / "c.txt", "c")
    outside = tmp_path / "outside"
    _write(outside / "d.txt", "d")
    os.symlink(outside, root / "link")

    found = list(files.walk(root))

    assert found[0] == str(root)
    assert found == [
        str(root),
        str(root / "a"),
        str(root / "a" / "c.txt"),
        str(root / "b.txt"),
        str(root / "link"),
        str(root / "link" / "d.txt"),
    ]


def test_tar_gz_dir_round_trip(tmp_path):
    src = tmp_path / "build"
    _write(src / "run.sh", "#!/bin/sh\n")
    _write(src / "src" / "conf" / "app.conf", "mode=prod")
    dest = tmp_path / "out.tar.gz"

    name = files.tar_gz_dir(dest, src)

    assert name == str(dest)
    with tarfile.open(dest, "r:gz") as archive:
        names = sorted(archive.getnames())
        assert names == ["run.sh", "src/conf/app.conf"]
        content = archive.extractfile("src/conf/app.conf").read()
    assert content == b"mode=prod"


def test_find_src_paths_found(tmp_path):
    output = _go_list_output(
        {"ImportPath": "github.com/wiselike/revel", "Dir": "/mod/revel", "GoFiles": ["revel.go"]}
    )
    with mock.patch("revelcmd.files.subprocess.run", return_value=output):
        result = files.find_src_paths(str(tmp_path), ["github.com/wiselike/revel"], None)
    assert result == {"github.com/wiselike/revel": "/mod/revel"}


def test_find_src_paths_calls_resolver(tmp_path):
    first = _go_list_output({"ImportPath": "example/app", "Dir": "", "GoFiles": []})
    second = _go_list_output({"ImportPath": "example/app", "Dir": "/src/app", "GoFiles": ["a.go"]})
    resolved = []
    with mock.patch("revelcmd.files.subprocess.run", side_effect=[first, second]):
        result = files.find_src_paths(str(tmp_path), ["example/app"], resolved.append)
    assert resolved == ["example/app"]
    assert result == {"example/app": "/src/app"}


def test_find_src_paths_missing_revel(tmp_path):
    with mock.patch("revelcmd.files.subprocess.run", return_value=_go_list_output()):
        with pytest.raises(NoRevelError):
            files.find_src_paths(str(tmp_path), ["github.com/wiselike/revel"], None)


def test_find_src_paths_missing_app(tmp_path):
    with mock.patch("revelcmd.files.subprocess.run", return_value=_go_list_output()):
        with pytest.raises(NoAppError):
            files.find_src_paths(str(tmp_path), ["example/app"], None)


def test_strip_module_path():
    assert files.strip_module_path("github.com/wiselike/revel-examples/chat/app") == (
        "github.com/wiselike/revel-examples"
    )
    assert files.strip_module_path("  /a/b/c/d") == "a/b/c"


def test_strip_module_path_too_short():
    with pytest.raises(ValueError):
        files.strip_module_path("a/b")