# revelcmd

A library of building blocks for working with Revel web applications:
copying application trees with template rendering, preparing a deployable
build directory, packing it into a `.tar.gz` archive, watching source trees
for changes, and running an application's test suites over HTTP.

## Installation

```
pip install revelcmd
```

`revelcmd.files.find_src_paths` runs `go list`, so it needs a `go` toolchain
on the `PATH`.

## Modules

### `revelcmd.errors`

- `BuildError(message, *details)` – a build step failure carrying key/value
  details.
- `new_build_if_error(err, message, *args)` – wraps an exception in a
  `BuildError`, or appends `args` to it if it already is one; returns `None`
  for `None`.
- `SourceError` – an error located in a source file. `set_link(pattern)`
  builds an HTML link from a pattern holding `{{Path}}` and `{{Line}}`;
  `context_source()` returns `SourceLine` items for the lines around the
  error.
- `new_compile_error(import_path, error_link, err)` – parses compiler output
  such as `file.go:12:5: message` into a `SourceError` and reads the file's
  lines.
- `NoAppError`, `NoRevelError` – raised when a package cannot be found.

### `revelcmd.environment`

- `reduced_env(add_go_path, environ=None)` – an environment for the go tool:
  `GOMODCACHE` is always dropped; `GOPATH` and `GOROOT` are dropped unless
  `add_go_path` is set.
- `command_options(add_go_path, base_path)` – `cwd` and `env` keyword
  arguments for `subprocess` calls.
- `init_logger(level)` – configures the `revelcmd` logger: records below
  WARNING go to stdout, the rest to stderr.

### `revelcmd.files`

- `dir_exists`, `exists`, `empty`, `read_lines`, `copy_file`.
- `render_text(template_source, data)` – renders `{{.Field}}` and
  `{{.A.B}}` actions against a mapping or object, HTML-escaping values;
  other actions raise `BuildError`.
- `generate_template(filename, source, args)` and
  `render_template(dest_path, src_path, data)` – render to a file.
- `copy_dir(dest_dir, src_dir, data)` – copies a tree, skipping dot files and
  dot directories and rendering files ending in `.template` (the suffix is
  dropped). Does nothing if `src_dir` does not exist.
- `walk(root)` – yields every path under `root` in lexical order, following
  symlinks.
- `tar_gz_dir(dest_filename, src_dir)` – writes every file under `src_dir`
  into a gzip tar archive.
- `find_src_paths(app_path, package_list, package_resolver)` – maps import
  paths to their source directories.
- `strip_module_path(pkg_name)` – the first three elements of an import path.

```python
from revelcmd.files import strip_module_path

strip_module_path("example.com/org/app/controllers")  # "example.com/org/app"
```

### `revelcmd.build`

- `build_safety_check(dest_path)` – empties and recreates a target directory,
  refusing one that is non-empty and has no `run.sh`.
- `parse_package_folders(value=None)` – splits the `package.folders` setting
  (default `conf,public,app/views`).
- `module_import_list(sections, mode="")` – import paths of `module.*`
  options, only from the section named `mode` when it is given.
- `copy_package_folders(dest_dir, src_dir, folders, copy_source)`.
- `write_run_scripts(target_path, bin_name, import_path, mode)` – writes
  `run.sh` (made executable) and `run.bat`.
- `package_archive_path(app_path, base_path, target_path="")` and
  `package_directory(dest_file, src_dir)` – choose and write the archive.

### `revelcmd.watcher`

- `Listener` with `refresh()`, and `DiscerningListener` which adds
  `watch_dir(path)` and `watch_file(basename)`.
- `Watcher` – `listen(listener, *roots)` watches directories recursively (or
  single files); `notify()` refreshes listeners with pending changes and
  returns the first error; `close()` stops watching. It is a context manager,
  and `Watcher.from_config(config, dev_mode)` reads `watch.rebuild.delay`,
  `watch` and `watch.mode`.
- `rebuild_required(path, is_chmod, listener)` – dot files never trigger a
  rebuild.

### `revelcmd.testrunner`

- `get_tests_list(base_url, attempts=4, delay=3.0)` – fetches
  `/@tests.list`, retrying while the server starts.
- `filter_test_suites(suites, "Suite[.Test]")` – raises `LookupError` when
  nothing matches.
- `run_test_suites(base_url, result_path, suites, template_path=None)` –
  runs each test, prints progress and returns the failed suites and the
  overall outcome.
- `report_results(result_path, failed, overall_success)` – prints the summary
  and writes `result.passed` or `result.failed`.
- `pluralize`, `write_result_file`, and the `TestDesc`, `TestSuiteDesc`,
  `TestResult` and `TestSuiteResult` data classes.

## What this package does not do

There is no command-line program. The package does not create new
applications from skeletons, compile or start applications, or report
installed and published versions; it offers the pieces above for a program
that does.