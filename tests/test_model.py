"""
Unit tests for the graph model.

Ensures that:
1. Every retained link resolves to known nodes; unresolved links are dropped.
2. Node ids are unique and malformed nodes are rejected without a partial graph.
3. The adjacency index is undirected and ignores self-loops.
"""
import json
import logging

import numpy as np
import pytest

from riskgraph.model import Graph, GraphValidationError, Link, Node, build, load_graph


def _node(node_id, group="person", **kwargs):
    return dict(id=node_id, group=group, **kwargs)


class TestBuild:
    def test_links_resolve_to_nodes(self, investigation):
        graph = Graph.from_dict(investigation)

        assert graph.n_nodes == 10
        assert graph.n_links == 10
        assert graph.dropped_links == 0
        for link in graph.links:
            assert link.source_id in graph.index
            assert link.target_id in graph.index

    def test_duplicate_id_is_rejected(self):
        with pytest.raises(GraphValidationError) as exc:
            build([_node("A"), _node("B"), _node("A", group="case")], [])

        assert exc.value.node_id == "A"
        assert isinstance(exc.value, ValueError)

    @pytest.mark.parametrize(
        "bad",
        [
            {"group": "person"},
            {"id": "", "group": "person"},
            {"id": 7, "group": "person"},
            {"id": "A", "group": "person", "size": 0},
            {"id": "A", "group": "person", "size": -3},
            {"id": "A", "group": "person", "size": "big"},
            "A",
        ],
    )
    def test_malformed_node_is_rejected(self, bad):
        with pytest.raises(GraphValidationError):
            build([bad], [])

    @pytest.mark.parametrize("x", [float("inf"), float("-inf"), float("nan"), "left", [1, 2]])
    def test_bad_position_hint_is_rejected(self, x):
        with pytest.raises(GraphValidationError) as exc:
            build([_node("A", x=x, y=0.0), _node("B")], [{"source": "A", "target": "B"}])

        assert exc.value.node_id == "A"

    def test_infinite_position_from_json_is_rejected(self):
        data = json.loads('{"nodes": [{"id": "A", "group": "person", "x": Infinity, "y": 0}]}')

        with pytest.raises(GraphValidationError):
            Graph.from_dict(data)

    def test_missing_or_null_relationship_is_blank(self):
        graph = build(
            [_node("A"), _node("B")],
            [{"source": "A", "target": "B", "relationship": None}, {"source": "B", "target": "A"}],
        )

        assert [link.relationship for link in graph.links] == ["", ""]

    def test_unresolved_link_is_dropped(self, caplog):
        caplog.set_level(logging.WARNING, logger="riskgraph.model")

        graph = build(
            [_node("A"), _node("B")],
            [
                {"source": "A", "target": "B", "relationship": "director"},
                {"source": "A", "target": "ghost", "relationship": "owner"},
                {"source": None, "target": "B"},
                "not a link",
            ],
        )

        assert graph.n_links == 1
        assert graph.dropped_links == 3
        assert graph.neighbors("A") == frozenset({"B"})
        assert "ghost" not in graph.adjacency
        assert any("unresolved" in r.message for r in caplog.records)

    def test_accepts_source_id_keys_and_objects(self):
        graph = build(
            [Node("A", "person"), _node("B", "case")],
            [{"sourceId": "A", "targetId": "B", "relationship": "suspect"}, Link("B", "A", "names")],
        )

        assert graph.n_links == 2
        assert graph.links[0] == Link("A", "B", "suspect")
        assert graph.edges.tolist() == [[0, 1], [1, 0]]

    def test_empty_dataset(self):
        for data in (None, {}, {"nodes": [], "links": []}):
            graph = Graph.from_dict(data)
            assert graph.n_nodes == 0
            assert graph.adjacency == {}
            assert graph.edges.shape == (0, 2)
            assert graph.bounding_box() is None

    def test_non_mapping_dataset_is_rejected(self):
        with pytest.raises(GraphValidationError):
            Graph.from_dict([{"id": "A"}])

    def test_unknown_group_kept_and_bad_color_ignored(self, caplog):
        caplog.set_level(logging.WARNING, logger="riskgraph.model")

        graph = build([_node("A", group="vessel", color="not-a-colour"), _node("B", color="#123456")], [])

        assert graph.resolve("A").group == "vessel"
        assert graph.resolve("A").color is None
        assert graph.resolve("B").color == "#123456"
        assert len(caplog.records) == 2

    def test_default_size_and_position_hint(self):
        graph = build([_node("A"), _node("B", size=4, x=1, y=2)], [])

        assert graph.resolve("A").size == 10.0
        assert np.isnan(graph.pos[0]).all()
        assert graph.position("B") == (1.0, 2.0)


class TestAdjacency:
    def test_undirected(self, triangle_data):
        graph = Graph.from_dict(triangle_data)

        assert graph.neighbors("A") == frozenset({"B", "C"})
        assert graph.neighbors("B") == frozenset({"A"})
        assert graph.neighbors("C") == frozenset({"A"})
        assert graph.is_connected("C", "A") and graph.is_connected("A", "C")
        assert not graph.is_connected("B", "C")

    def test_self_loop_not_a_neighbour(self):
        graph = build([_node("A")], [{"source": "A", "target": "A", "relationship": "alias"}])

        assert graph.n_links == 1
        assert graph.neighbors("A") == frozenset()

    def test_unknown_id_raises_key_error(self, triangle_data):
        graph = Graph.from_dict(triangle_data)

        with pytest.raises(KeyError):
            graph.resolve("Z")
        with pytest.raises(KeyError):
            graph.neighbors("Z")


class TestPins:
    def test_pin_and_unpin(self, triangle_data):
        graph = Graph.from_dict(triangle_data)
        graph.vel[0] = (3.0, 4.0)

        graph.pin("A", 10.0, 20.0)

        assert graph.is_pinned("A")
        assert graph.pinned_mask().tolist() == [True, False, False]
        assert graph.position("A") == (10.0, 20.0)
        assert graph.vel[0].tolist() == [0.0, 0.0]

        graph.unpin("A")

        assert not graph.is_pinned("A")
        assert graph.position("A") == (10.0, 20.0)

    def test_bounding_box_with_sizes(self, triangle_data):
        graph = Graph.from_dict(triangle_data)

        assert graph.bounding_box() == (100.0, 100.0, 300.0, 300.0)
        assert graph.bounding_box(with_sizes=True) == (80.0, 80.0, 310.0, 310.0)
        assert graph.center() == pytest.approx((500.0 / 3.0, 500.0 / 3.0))
        assert Graph.from_dict(None).center() == (0.0, 0.0)


class TestSerialization:
    def test_load_graph(self, tmp_path, triangle_data):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(triangle_data), encoding="utf-8")

        graph = load_graph(str(path))

        assert [n.id for n in graph.nodes] == ["A", "B", "C"]
        assert graph.n_links == 2

    def test_to_dict_reports_live_positions(self, triangle_data):
        graph = Graph.from_dict(triangle_data)
        graph.pin("B", 1.5, 2.5)

        data = graph.to_dict()

        assert data["nodes"][1] == {"id": "B", "group": "company", "size": 10.0, "x": 1.5, "y": 2.5}
        assert data["links"][1] == {"source": "C", "target": "A", "relationship": "relative"}
