# tests/test_reference.py
import pytest

from gcqc.analysis.models import GcHistKey
from gcqc.clients.reference import RefDist
from gcqc.services.errors import ConfigError


@pytest.fixture
def ref_dist(reference_dict):
    return RefDist.from_json(reference_dict)


@pytest.mark.parametrize("query, expected", [
    (120, 100),
    (75, 50),     # equidistant from 50 and 100: earlier entry wins
    (125, 100),   # equidistant from 100 and 150
    (10, 50),
    (1000, 150),
    (150, 150),
])
def test_get_closest_reference(ref_dist, query, expected):
    rl, _ = ref_dist.get_closest_reference(query)
    assert rl == expected


def test_reference_counts(ref_dist):
    _, counts = ref_dist.get_closest_reference(100)
    assert {k for k, _ in counts.regular} == {GcHistKey(50, 50), GcHistKey(60, 40)}
    assert [k for k, _ in counts.bisulfite] == [GcHistKey(80, 20)]

    _, counts = ref_dist.get_closest_reference(50)
    assert counts.bisulfite is None


def test_from_json_file_compressed(write_json, reference_dict):
    path = write_json(reference_dict, "ref.json.gz")
    ref = RefDist.from_json_file(path)
    assert ref.read_lengths == [50, 100, 150]


def test_from_json_file_missing(tmp_path):
    with pytest.raises(ConfigError):
        RefDist.from_json_file(tmp_path / "nope.json")


def test_from_json_file_invalid_json(tmp_path):
    path = tmp_path / "ref.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        RefDist.from_json_file(path)


def test_empty_read_lengths():
    with pytest.raises(ConfigError):
        RefDist.from_json({'read_lengths': [], 'read_length_specific_counts': {}})


def test_missing_length_entry(reference_dict):
    reference_dict['read_lengths'].append(200)
    with pytest.raises(ConfigError):
        RefDist.from_json(reference_dict)


def test_bad_bucket_key(reference_dict):
    reference_dict['read_length_specific_counts']['50']['counts'] = {"x": 1}
    with pytest.raises(ConfigError):
        RefDist.from_json(reference_dict)
