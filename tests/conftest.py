# tests/conftest.py
import copy
import gzip
import json
import logging
import struct

import pytest

# --- K-mer index fixtures ---

KMCV_CORE = {
    'version': [2, 0],
    'kmer_length': 12,
    'max_hits': 4,
    'n_contigs': 2,
    'n_targets': 3,
    'rnd_id': 1234,
}

# (contig, start, end) -> sizes 100, 50, 10
KMCV_TARGETS = [(0, 0, 99), (0, 200, 249), (1, 0, 9)]
KMCV_CONTIGS = ["chr1", "chr2"]


def build_kmcv(magic=b'KMCV', version=(2, 0), kmer_length=12, max_hits=4, rnd_id=1234,
               contigs=None, targets=None, n_contigs=None, n_targets=None):
    """Builds the bytes of a KMCV index."""
    contigs = KMCV_CONTIGS if contigs is None else contigs
    targets = KMCV_TARGETS if targets is None else targets
    n_contigs = len(contigs) if n_contigs is None else n_contigs
    n_targets = len(targets) if n_targets is None else n_targets

    buf = struct.pack('<4s2BBBIII', magic, version[0], version[1], kmer_length, max_hits,
                      rnd_id, n_contigs, n_targets)
    buf += bytes(52 - len(buf))
    for name in contigs:
        raw = name.encode('utf-8') if isinstance(name, str) else name
        buf += struct.pack('<H', len(raw)) + raw
    for t in targets:
        buf += struct.pack('<III', *t)
    return buf


@pytest.fixture
def kmcv_bytes():
    """Factory for KMCV index bytes."""
    return build_kmcv


@pytest.fixture
def kmcv_file(tmp_path):
    path = tmp_path / "targets.kmcv"
    path.write_bytes(build_kmcv())
    return path


# --- Dataset fixtures ---

def _counts(a, c, g, t, n=0):
    return {'A': a, 'C': c, 'G': g, 'T': t, 'N': n}


def make_dataset_dict(trim=0, max_read_length=9, sample="S1", kmers=False, **overrides):
    """
    A valid per-file JSON summary. The per-cycle A fraction rises and the G
    fraction falls along the read.
    """
    per_pos = {}
    for cycle in range(trim + 1, max_read_length + 1):
        per_pos[str(cycle)] = _counts(100 + cycle, 100, 200 - cycle, 100, 1)
    d = {
        'trim': trim,
        'min_qual': 20,
        'max_read_length': max_read_length,
        'bisulfite': "None",
        'fli': {
            'sample': sample,
            'library': "LIB1",
            'flowcell': "FC1",
            'lane': 1,
            'index': "ACGTACGT",
            'read_end': 1,
        },
        'cts': _counts(1000, 900, 850, 950, 12),
        'per_pos_cts': per_pos,
        'gc_hash': {"30:20": 10, "25:25": 5, "20:30": 3},
    }
    if kmers:
        d['kmer_counts'] = {
            'kmcv': copy.deepcopy(KMCV_CORE),
            'total_reads': 100,
            'mapped_reads': 80,
            'total_bases': 10000,
            'mapped_bases': 7500,
            'counts': [[10, 1000], [5, 500], [0, 0]],
        }
    d.update(overrides)
    return d


@pytest.fixture
def dataset_dict():
    """Factory for per-file JSON summaries."""
    return make_dataset_dict


@pytest.fixture
def write_json(tmp_path):
    """Writes an object as (optionally gzipped) JSON under tmp_path."""
    def _write(obj, name="sample.json"):
        path = tmp_path / name
        text = json.dumps(obj)
        if name.endswith(".gz"):
            with gzip.open(path, 'wt', encoding='utf-8') as fh:
                fh.write(text)
        else:
            path.write_text(text, encoding='utf-8')
        return path
    return _write


@pytest.fixture
def reference_dict():
    return {
        'read_lengths': [50, 100, 150],
        'read_length_specific_counts': {
            '50': {'counts': {"30:20": 10, "25:25": 5, "20:30": 3}},
            '100': {'counts': {"50:50": 7, "60:40": 3},
                    'bisulfite_counts': {"80:20": 5}},
            '150': {'counts': {"75:75": 4}},
        },
    }


@pytest.fixture
def restore_logging():
    """Restores root logger handlers and level after tests that configure logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    logging.captureWarnings(False)
