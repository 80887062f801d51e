# tests/test_cli.py
import pytest

import gcqc_cli
from gcqc.analysis.models import MergeKey


@pytest.fixture(autouse=True)
def _restore(restore_logging):
    yield


@pytest.fixture
def ini_file(tmp_path):
    def _write(text):
        path = tmp_path / "gcqc.ini"
        path.write_text(text)
        return str(path)
    return _write


# --- Argument parsing ---

def test_parse_args_defaults():
    args = gcqc_cli.parse_args(["a.json"])
    assert args.input == ["a.json"]
    assert args.threads is None
    assert args.loglevel == 'info'
    assert args.timestamp == 'none'
    assert args.output is None
    assert gcqc_cli.resolve_merge_key(args) is None


def test_resolve_merge_key():
    assert gcqc_cli.resolve_merge_key(gcqc_cli.parse_args(["-m", "a.json"])) == MergeKey.DEFAULT
    assert gcqc_cli.resolve_merge_key(gcqc_cli.parse_args(["-M", "fli", "a.json"])) == MergeKey.FLI
    # An explicit key wins over -m
    args = gcqc_cli.parse_args(["-m", "-M", "Library", "a.json"])
    assert gcqc_cli.resolve_merge_key(args) == MergeKey.LIBRARY


def test_parse_args_bad_merge_key():
    with pytest.raises(SystemExit) as e:
        gcqc_cli.parse_args(["-M", "colour", "a.json"])
    assert e.value.code == 2


def test_parse_args_requires_input():
    with pytest.raises(SystemExit):
        gcqc_cli.parse_args([])


def test_ini_defaults_and_override(ini_file):
    path = ini_file("[gcqc]\nthreads = 3\nmerge_by = sample\nno_header = yes\nloglevel = debug\n")

    args = gcqc_cli.parse_args(["-c", path, "a.json"])
    assert args.threads == 3
    assert args.no_header is True
    assert args.loglevel == 'debug'
    assert gcqc_cli.resolve_merge_key(args) == MergeKey.SAMPLE

    # Command-line options beat the INI file
    args = gcqc_cli.parse_args(["-c", path, "-t", "5", "-l", "error", "a.json"])
    assert args.threads == 5
    assert args.loglevel == 'error'


def test_ini_invalid_level(ini_file):
    path = ini_file("[gcqc]\nloglevel = chatty\n")
    with pytest.raises(SystemExit):
        gcqc_cli.parse_args(["-c", path, "a.json"])


def test_ini_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        gcqc_cli.parse_args(["-c", str(tmp_path / "absent.ini"), "a.json"])


# --- main ---

def test_main_success(write_json, dataset_dict, tmp_path):
    paths = [str(write_json(dataset_dict(sample=s), f"{s}.json")) for s in ("A", "B")]
    out = tmp_path / "report.tsv"
    side = tmp_path / "side"

    gcqc_cli.main(["--quiet", "-o", str(out), "--sidecar-dir", str(side)] + paths)

    lines = out.read_text().splitlines()
    assert lines[0].startswith("Sample\t")
    assert sorted(line.split("\t")[0] for line in lines[1:]) == ["A", "B"]
    assert (side / "A.gc_hist.tsv").exists()


def test_main_merge_no_header(write_json, dataset_dict, tmp_path):
    paths = [str(write_json(dataset_dict(sample="A"), f"{i}.json")) for i in range(3)]
    out = tmp_path / "report.tsv"

    gcqc_cli.main(["--quiet", "-m", "-H", "-o", str(out), "--sidecar-dir", str(tmp_path)] + paths)

    lines = out.read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("A\t")


def test_main_processing_failure_exits(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("not json")

    with pytest.raises(SystemExit) as e:
        gcqc_cli.main(["--quiet", "-o", str(tmp_path / "r.tsv"), str(bad)])
    assert e.value.code == 1


def test_main_config_error_exits(write_json, dataset_dict, tmp_path):
    path = str(write_json(dataset_dict(), "a.json"))

    with pytest.raises(SystemExit) as e:
        gcqc_cli.main(["--quiet", "-r", str(tmp_path / "missing.json"), path])
    assert e.value.code == 1
