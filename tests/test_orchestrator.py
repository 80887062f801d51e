# tests/test_orchestrator.py
import pytest

from gcqc.analysis.models import MergeKey
from gcqc.clients.kmcv import Kmcv
from gcqc.services.config_loader import PipelineConfig
from gcqc.services.errors import WorkerPanic
from gcqc.workflows import run_pipeline
from gcqc.workflows.output_writer import header_columns


def _read_table(path):
    lines = path.read_text().splitlines()
    header = lines[0].split("\t")
    return header, [dict(zip(header, line.split("\t"))) for line in lines[1:]]


@pytest.fixture
def sidecars(tmp_path):
    side = tmp_path / "sidecars"
    side.mkdir()
    return side


# --- Standard pipeline ---

def test_std_pipeline(write_json, dataset_dict, tmp_path, sidecars):
    paths = tuple(write_json(dataset_dict(sample=f"S{i}"), f"s{i}.json") for i in range(6))
    out = tmp_path / "report.tsv"
    cfg = PipelineConfig(input_files=paths, output_file=out, threads=2, sidecar_dir=sidecars)

    assert run_pipeline(cfg) is False

    header, rows = _read_table(out)
    assert header == header_columns(with_kmers=False)
    # Arrival order is not input order
    assert sorted(r["Sample"] for r in rows) == [f"S{i}" for i in range(6)]
    for i in range(6):
        assert (sidecars / f"s{i}.gc_hist.tsv").exists()
        assert (sidecars / f"s{i}.base_dist.tsv").exists()


def test_std_pipeline_single_thread_backpressure(write_json, dataset_dict, tmp_path, sidecars):
    """One worker and an input channel of capacity 2 still process every file."""
    paths = tuple(write_json(dataset_dict(sample=f"S{i}"), f"s{i}.json") for i in range(7))
    out = tmp_path / "report.tsv"
    cfg = PipelineConfig(input_files=paths, output_file=out, threads=1, sidecar_dir=sidecars)

    assert run_pipeline(cfg) is False
    _, rows = _read_table(out)
    assert len(rows) == 7


def test_std_pipeline_bad_file_fails_run(write_json, dataset_dict, tmp_path, sidecars):
    """A bad file fails the run; other results already produced are kept."""
    good = write_json(dataset_dict(sample="GOOD"), "good.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{oops")
    out = tmp_path / "report.tsv"
    # One thread per file, so the good file is not starved by the failing worker
    cfg = PipelineConfig(input_files=(good, bad), output_file=out, threads=2, sidecar_dir=sidecars)

    assert run_pipeline(cfg) is True
    _, rows = _read_table(out)
    assert [r["Sample"] for r in rows] == ["GOOD"]


def test_std_pipeline_worker_panic(write_json, dataset_dict, tmp_path, sidecars, mocker):
    mocker.patch("gcqc.workflows.dataset_processor.analyze_dataset", side_effect=RuntimeError("boom"))
    paths = (write_json(dataset_dict(), "a.json"),)
    cfg = PipelineConfig(input_files=paths, output_file=tmp_path / "r.tsv", threads=1,
                         sidecar_dir=sidecars)

    with pytest.raises(WorkerPanic):
        run_pipeline(cfg)


# --- Merge pipeline ---

def test_merge_pipeline_sums_counts(write_json, dataset_dict, tmp_path, sidecars, kmcv_file):
    js1 = dataset_dict(sample="SAMPLE_A", kmers=True)
    js2 = dataset_dict(sample="SAMPLE_A", kmers=True)
    js2['kmer_counts']['total_reads'] = 50
    js2['kmer_counts']['mapped_bases'] = 2500
    paths = (write_json(js1, "a.json"), write_json(js2, "b.json"))
    out = tmp_path / "report.tsv"
    cfg = PipelineConfig(input_files=paths, output_file=out, threads=2, merge_key=MergeKey.DEFAULT,
                         kmcv=Kmcv.from_file(kmcv_file), sidecar_dir=sidecars)

    assert run_pipeline(cfg) is False

    header, rows = _read_table(out)
    assert header == header_columns(with_kmers=True)
    assert len(rows) == 1
    row = rows[0]
    assert row["Sample"] == "SAMPLE_A"
    assert row["File"] == "SAMPLE_A"
    assert row["Total-reads"] == "150"
    assert row["Mapped-reads"] == "160"
    assert row["Total-bases"] == "20000"
    assert row["Mapped-bases"] == "10000"
    # Per-target bases doubled: coverages [20, 20, 0]
    assert row["Median-coverage"] == "20"
    assert (sidecars / "SAMPLE_A.gc_hist.tsv").exists()


def test_merge_pipeline_groups(write_json, dataset_dict, tmp_path, sidecars):
    paths = tuple(
        write_json(dataset_dict(sample=s), f"{i}.json")
        for i, s in enumerate(["X", "Y", "X", "Z", "Y", "X"])
    )
    out = tmp_path / "report.tsv"
    cfg = PipelineConfig(input_files=paths, output_file=out, threads=3, merge_key=MergeKey.SAMPLE,
                         sidecar_dir=sidecars)

    assert run_pipeline(cfg) is False
    _, rows = _read_table(out)
    assert sorted(r["Sample"] for r in rows) == ["X", "Y", "Z"]


def test_merge_pipeline_incompatible(write_json, dataset_dict, tmp_path, sidecars):
    paths = (
        write_json(dataset_dict(sample="S"), "a.json"),
        write_json(dataset_dict(sample="S", trim=2), "b.json"),
    )
    out = tmp_path / "report.tsv"
    cfg = PipelineConfig(input_files=paths, output_file=out, threads=2, merge_key=MergeKey.SAMPLE,
                         sidecar_dir=sidecars)

    assert run_pipeline(cfg) is True
    # The output worker still ran and wrote its header
    header, rows = _read_table(out)
    assert rows == []
    assert header[0] == "Sample"


def test_merge_pipeline_dotted_keys_keep_separate_sidecars(write_json, dataset_dict, tmp_path, sidecars):
    paths = (
        write_json(dataset_dict(sample="NA1.rep1"), "a.json"),
        write_json(dataset_dict(sample="NA1.rep2"), "b.json"),
    )
    cfg = PipelineConfig(input_files=paths, output_file=tmp_path / "r.tsv", threads=2,
                         merge_key=MergeKey.SAMPLE, sidecar_dir=sidecars)

    assert run_pipeline(cfg) is False
    assert sorted(p.name for p in sidecars.iterdir()) == [
        "NA1.rep1.base_dist.tsv", "NA1.rep1.gc_hist.tsv",
        "NA1.rep2.base_dist.tsv", "NA1.rep2.gc_hist.tsv",
    ]


def test_merge_pipeline_malformed_identity_fails_run(write_json, dataset_dict, tmp_path, sidecars):
    """A file with a non-string sample fails the run without a worker crash."""
    js = dataset_dict()
    js['fli']['sample'] = 123
    cfg = PipelineConfig(input_files=(write_json(js, "a.json"),), output_file=tmp_path / "r.tsv",
                         threads=1, merge_key=MergeKey.DEFAULT, sidecar_dir=sidecars)

    assert run_pipeline(cfg) is True
    _, rows = _read_table(tmp_path / "r.tsv")
    assert rows == []
