import json
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture
def investigation():
    """The sample investigation dataset shipped in examples/."""
    with open(EXAMPLES / "investigation.json", "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def triangle_data():
    """Three placed nodes: A -> B and C -> A (note the reversed direction)."""
    return {
        "nodes": [
            {"id": "A", "group": "person", "size": 20, "x": 100.0, "y": 100.0},
            {"id": "B", "group": "company", "size": 10, "x": 300.0, "y": 100.0},
            {"id": "C", "group": "family", "size": 10, "x": 100.0, "y": 300.0},
        ],
        "links": [
            {"source": "A", "target": "B", "relationship": "director"},
            {"source": "C", "target": "A", "relationship": "relative"},
        ],
    }


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")
