"""Tests for the depalign command line entry point."""

import csv
import json
import logging

import pytest

from args import parse_args
from cli_config import apply_config, apply_resolution_overrides, load_config
from constants import Constants, ExitCodes
from depalign import export_csv, export_json, is_remote, main, output_format
from resolution.manifest import parse_repository
from resolution.models import Dependency
from resolution.propagator import ResolutionRequest, resolve_sync

MANIFEST = """
dependencies:
  - org.example:db:1.0
  - org.other:a:1.0
platforms:
  - members: "org.example:*"
    platform: org.example:platform
"""

REPOSITORY = {
    "modules": [
        {"module": "org.example:db:1.0"},
        {"module": "org.example:db:2.0"},
        {"module": "org.example:lib:2.0"},
        {"module": "org.other:a:1.0", "dependencies": ["org.example:lib:2.0"]},
    ]
}


@pytest.fixture(autouse=True)
def restore_runtime(monkeypatch):
    """``main`` writes tunables onto ``Constants`` and configures the root logger."""
    saved = {name: getattr(Constants, name) for name in vars(Constants) if name.isupper()}
    root_level = logging.getLogger().level
    monkeypatch.setenv(Constants.ENV_LOG_LEVEL, "INFO")
    yield
    for name, value in saved.items():
        setattr(Constants, name, value)
    logging.getLogger().setLevel(root_level)


@pytest.fixture
def files(tmp_path):
    manifest = tmp_path / "manifest.yaml"
    manifest.write_text(MANIFEST, encoding="utf-8")
    repository = tmp_path / "repo.json"
    repository.write_text(json.dumps(REPOSITORY), encoding="utf-8")
    return tmp_path, str(manifest), str(repository)


def run_main(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


class TestArgs:
    """Argument parsing."""

    def test_required_and_defaults(self):
        ns = parse_args(["-m", "m.yaml", "-r", "repo.yaml"])
        assert ns.MANIFEST == "m.yaml"
        assert ns.REPOSITORY == "repo.yaml"
        assert ns.LOG_LEVEL == "INFO"
        assert ns.OUTPUT is None
        assert ns.SCHEME is None
        assert ns.QUIET is False

    def test_tunables(self):
        ns = parse_args([
            "-m", "m.yaml", "-r", "http://idx",
            "--max-iterations", "5", "--concurrency", "2", "--cache-ttl", "30", "--timeout", "7",
            "-s", "SEMVER", "-f", "CSV",
        ])
        assert ns.MAX_ITERATIONS == 5
        assert ns.CONCURRENCY == 2
        assert ns.CACHE_TTL == 30
        assert ns.TIMEOUT == 7
        assert ns.SCHEME == "semver"
        assert ns.OUTPUT_FORMAT == "csv"

    def test_manifest_is_required(self):
        with pytest.raises(SystemExit):
            parse_args(["-r", "repo.yaml"])

    def test_unknown_scheme_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["-m", "m.yaml", "-r", "repo.yaml", "-s", "calver"])

    def test_output_format_inference(self):
        assert output_format(parse_args(["-m", "m", "-r", "r", "-o", "out.CSV"])) == "csv"
        assert output_format(parse_args(["-m", "m", "-r", "r", "-o", "out.txt"])) == "json"
        assert output_format(parse_args(["-m", "m", "-r", "r", "-o", "out.csv", "-f", "json"])) == "json"

    def test_is_remote(self):
        assert is_remote("HTTPS://index.example/modules")
        assert not is_remote("repo.yaml")


class TestConfig:
    """Config file loading and precedence."""

    def test_load_yaml_and_apply(self, tmp_path):
        path = tmp_path / "depalign.yml"
        path.write_text("resolution:\n  max_iterations: 3\n  http_retry_base_delay_sec: 0.5\n", encoding="utf-8")
        apply_config(load_config(str(path)))
        assert Constants.MAX_ALIGNMENT_ITERATIONS == 3
        assert Constants.HTTP_RETRY_BASE_DELAY_SEC == 0.5

    def test_load_json(self, tmp_path):
        path = tmp_path / "depalign.json"
        path.write_text(json.dumps({"resolution": {"scheme": "pep440"}}), encoding="utf-8")
        apply_config(load_config(str(path)))
        assert Constants.DEFAULT_VERSION_SCHEME == "pep440"

    def test_missing_file_is_ignored(self, tmp_path, caplog):
        assert load_config(str(tmp_path / "absent.yml")) == {}
        assert "Could not load config file" in caplog.text
        assert load_config(None) == {}

    def test_non_mapping_is_ignored(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        assert load_config(str(path)) == {}

    def test_invalid_values_keep_defaults(self, caplog):
        apply_config({"resolution": {
            "max_iterations": "many",
            "max_concurrency": 0,
            "scheme": "calver",
            "no_such_key": 1,
        }})
        assert Constants.MAX_ALIGNMENT_ITERATIONS == 10
        assert Constants.METADATA_MAX_CONCURRENCY == 8
        assert Constants.DEFAULT_VERSION_SCHEME == "gradle"
        assert "Ignoring invalid config value" in caplog.text
        assert "Ignoring non-positive" in caplog.text
        assert "Ignoring unknown version scheme" in caplog.text
        assert "Unknown config key resolution.no_such_key" in caplog.text

    def test_cli_overrides_config(self):
        apply_config({"resolution": {"max_iterations": 3, "request_timeout": 5}})
        apply_resolution_overrides(parse_args(["-m", "m", "-r", "r", "--max-iterations", "7"]))
        assert Constants.MAX_ALIGNMENT_ITERATIONS == 7
        assert Constants.REQUEST_TIMEOUT == 5


class TestExports:
    """JSON and CSV exports of a resolved graph."""

    @pytest.fixture
    def graph(self):
        provider = parse_repository({"modules": [
            {"module": "g:a:1.0", "dependencies": ["g:c:2.0"]},
            {"module": "g:c:1.0"},
            {"module": "g:c:2.0"},
        ]})
        request = ResolutionRequest.of([Dependency.of("g:a:1.0"), Dependency.of("g:c:1.0")])
        return resolve_sync(request, provider)

    def test_export_json(self, graph, tmp_path):
        out = tmp_path / "out.json"
        export_json(graph, str(out))
        data = json.loads(out.read_text(encoding="utf-8"))
        modules = {m["module"]: m for m in data["modules"]}
        assert modules["g:c"]["version"] == "2.0"
        assert modules["g:c"]["reason"] == "conflict-resolved"
        assert modules["g:c"]["requested"] == ["1.0", "2.0"]
        assert data["iterations"] == 1
        (overridden,) = [e for e in data["edges"] if e["status"] == "overridden"]
        assert overridden["to"] == "g:c"
        assert overridden["requested"] == "1.0"
        assert overridden["selected"] == "2.0"

    def test_export_csv(self, graph, tmp_path):
        out = tmp_path / "out.csv"
        export_csv(graph, str(out))
        rows = list(csv.reader(out.open("r", encoding="utf-8")))
        assert rows[0] == ["Group", "Name", "Version", "Reason", "Conflicted", "Requested Versions"]
        by_name = {row[1]: row for row in rows[1:]}
        assert by_name["c"] == ["g", "c", "2.0", "conflict-resolved", "True", "1.0;2.0"]
        assert by_name["a"][3] == "default"

    def test_unwritable_path_exits(self, graph, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            export_json(graph, str(tmp_path / "missing-dir" / "out.json"))
        assert excinfo.value.code == ExitCodes.FILE_ERROR.value


class TestMain:
    """End-to-end runs of ``main``."""

    def test_json_output(self, files):
        tmp_path, manifest, repository = files
        out = tmp_path / "graph.json"
        assert run_main(["-m", manifest, "-r", repository, "-o", str(out)]) == ExitCodes.SUCCESS.value
        data = json.loads(out.read_text(encoding="utf-8"))
        versions = {m["module"]: m["version"] for m in data["modules"]}
        assert versions["org.example:db"] == "2.0"
        assert versions["org.example:lib"] == "2.0"
        assert data["iterations"] == 2
        assert len(data["constraints"]) == 2

    def test_csv_output(self, files):
        tmp_path, manifest, repository = files
        out = tmp_path / "graph.out"
        assert run_main(["-m", manifest, "-r", repository, "-o", str(out), "-f", "csv"]) == 0
        rows = list(csv.reader(out.open("r", encoding="utf-8")))
        by_name = {row[1]: row for row in rows[1:]}
        assert by_name["db"][:4] == ["org.example", "db", "2.0", "by-alignment"]

    def test_console_output(self, files, capsys):
        _, manifest, repository = files
        assert run_main(["-m", manifest, "-r", repository]) == 0
        assert "org.example:db:2.0 (by-alignment)" in capsys.readouterr().out

    def test_quiet(self, files, capsys):
        _, manifest, repository = files
        assert run_main(["-m", manifest, "-r", repository, "-q"]) == 0
        assert capsys.readouterr().out == ""

    def test_missing_manifest(self, files):
        tmp_path, _, repository = files
        assert run_main(["-m", str(tmp_path / "absent.yaml"), "-r", repository]) == ExitCodes.FILE_ERROR.value

    def test_unknown_manifest_scheme(self, files):
        tmp_path, _, repository = files
        manifest = tmp_path / "calver.yaml"
        manifest.write_text("scheme: calver\ndependencies: [g:a:1.0]\n", encoding="utf-8")
        assert run_main(["-m", str(manifest), "-r", repository]) == ExitCodes.FILE_ERROR.value

    def test_missing_repository(self, files):
        tmp_path, manifest, _ = files
        assert run_main(["-m", manifest, "-r", str(tmp_path / "absent.json")]) == ExitCodes.FILE_ERROR.value

    def test_resolution_failure(self, files):
        tmp_path, _, repository = files
        manifest = tmp_path / "missing.yaml"
        manifest.write_text("dependencies: [org.example:nope:1.0]\n", encoding="utf-8")
        assert run_main(["-m", str(manifest), "-r", repository]) == ExitCodes.RESOLUTION_ERROR.value

    def test_config_iteration_ceiling(self, files):
        tmp_path, manifest, repository = files
        config = tmp_path / "depalign.yml"
        config.write_text("resolution:\n  max_iterations: 1\n", encoding="utf-8")
        argv = ["-m", manifest, "-r", repository, "-q", "-c", str(config)]
        assert run_main(argv) == ExitCodes.RESOLUTION_ERROR.value
        assert run_main(argv + ["--max-iterations", "4"]) == ExitCodes.SUCCESS.value
