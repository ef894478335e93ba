"""
Tests for the pointer state machine.

Ensures that:
1. A dragged node sits at the pointer's world coordinate and is released on button up.
2. A press without movement toggles the selection and notifies listeners.
3. Hover highlighting is symmetric over the undirected adjacency.
"""
import pytest

from riskgraph.interaction import InteractionController, InteractionState
from riskgraph.layout import LayoutSimulator
from riskgraph.model import Graph
from riskgraph.viewport import Viewport


@pytest.fixture
def graph(triangle_data):
    return Graph.from_dict(triangle_data)


@pytest.fixture
def simulator(graph):
    return LayoutSimulator(graph, extent=(800, 600))


@pytest.fixture
def controller(graph, simulator):
    return InteractionController(graph, simulator, Viewport(), surface=(800, 600))


class TestHitTest:
    def test_node_under_pointer(self, controller):
        assert controller.node_at(100.0, 100.0) == "A"
        assert controller.node_at(124.0, 100.0) == "A"
        assert controller.node_at(125.0, 100.0) is None
        assert controller.node_at(305.0, 95.0) == "B"

    def test_link_label_is_not_a_target(self, controller):
        # midpoint of A -> B, where the relationship label is drawn
        assert controller.node_at(200.0, 100.0) is None

    def test_hit_test_follows_viewport(self, controller):
        controller.viewport.scale = 2.0
        controller.viewport.tx = 10.0
        controller.viewport.ty = 20.0

        assert controller.node_at(210.0, 220.0) == "A"
        assert controller.node_at(100.0, 100.0) is None

    def test_empty_graph(self):
        empty = Graph.from_dict(None)
        ctrl = InteractionController(empty, LayoutSimulator(empty), Viewport(), surface=(800, 600))

        assert ctrl.node_at(0.0, 0.0) is None
        ctrl.pointer_down(0.0, 0.0)
        assert ctrl.state is InteractionState.PANNING


class TestDrag:
    def test_press_pins_node_and_reheats(self, controller, graph, simulator):
        controller.pointer_down(105.0, 100.0)

        assert controller.state is InteractionState.DRAGGING
        assert controller.dragging_node_id == "A"
        assert controller.drag.offset == (5.0, 0.0)
        assert graph.is_pinned("A")
        assert graph.position("A") == (105.0, 100.0)
        assert simulator.alpha_target == 0.3
        assert simulator.running

    def test_node_follows_pointer_through_ticks(self, controller, graph, simulator):
        controller.pointer_down(100.0, 100.0)

        for sx, sy in [(150.0, 120.0), (400.0, 420.0), (640.0, 80.0)]:
            controller.pointer_move(sx, sy)
            simulator.tick(3)
            assert graph.position("A") == controller.viewport.to_world(sx, sy)

    def test_drag_under_zoom(self, controller, graph):
        controller.viewport.scale = 2.0
        controller.viewport.tx = 10.0
        controller.viewport.ty = 20.0

        controller.pointer_down(210.0, 220.0)
        controller.pointer_move(400.0, 300.0)

        assert graph.position("A") == (195.0, 140.0)

    def test_drag_is_clamped_to_visible_area(self, controller, graph):
        controller.pointer_down(100.0, 100.0)

        controller.pointer_move(-500.0, 900.0)

        assert graph.position("A") == (0.0, 600.0)

    def test_release_unpins_and_resumes_layout(self, controller, graph, simulator):
        controller.pointer_down(100.0, 100.0)
        controller.pointer_move(150.0, 150.0)

        controller.pointer_up(150.0, 150.0)

        assert controller.state is InteractionState.IDLE
        assert controller.dragging_node_id is None
        assert not graph.is_pinned("A")
        assert simulator.alpha_target == 0.0
        simulator.tick()
        assert graph.position("A") != (150.0, 150.0)

    def test_moved_drag_does_not_select(self, controller):
        selected = []
        controller.on_select(selected.append)

        controller.pointer_down(100.0, 100.0)
        controller.pointer_move(150.0, 150.0)
        controller.pointer_up(150.0, 150.0)

        assert selected == []
        assert controller.highlight.selected_node_id is None

    def test_resize_mid_drag_keeps_dragging(self, controller, graph, simulator):
        controller.pointer_down(100.0, 100.0)

        controller.resize(400.0, 300.0)
        controller.pointer_move(50.0, 60.0)

        assert controller.state is InteractionState.DRAGGING
        assert graph.position("A") == (50.0, 60.0)
        assert simulator.center == (200.0, 150.0)


class TestSelection:
    def test_click_toggles_selection(self, controller):
        selected = []
        controller.on_select(selected.append)

        controller.pointer_down(100.0, 100.0)
        controller.pointer_up(101.0, 101.0)
        assert controller.highlight.selected_node_id == "A"

        controller.pointer_down(100.0, 100.0)
        controller.pointer_up(100.0, 100.0)
        assert controller.highlight.selected_node_id is None

        assert selected == ["A", None]

    def test_click_another_node_moves_selection(self, controller):
        controller.pointer_down(100.0, 100.0)
        controller.pointer_up(100.0, 100.0)
        controller.pointer_down(300.0, 100.0)
        controller.pointer_up(300.0, 100.0)

        assert controller.highlight.selected_node_id == "B"

    def test_clear_selection(self, controller):
        selected = []
        controller.on_select(selected.append)
        controller.toggle_selection("C")

        controller.clear_selection()
        controller.clear_selection()

        assert selected == ["C", None]

    def test_disposed_controller_is_silent(self, controller):
        selected = []
        controller.on_select(selected.append)
        controller.dispose()

        controller.toggle_selection("A")

        assert selected == []


class TestHover:
    def test_hover_lights_direct_neighbours(self, controller):
        controller.pointer_move(300.0, 100.0)

        assert controller.highlight.active_node_id == "B"
        assert controller.highlight.connected_ids == frozenset({"A"})
        assert controller.state is InteractionState.IDLE

    def test_highlight_is_symmetric(self, controller, graph):
        seen = {}
        for node in graph.nodes:
            controller.hover(node.id)
            seen[node.id] = controller.highlight.connected_ids

        for a in seen:
            for b in seen:
                assert (b in seen[a]) == (a in seen[b])
        assert "A" in seen["C"] and "C" in seen["A"]

    def test_leave_clears_hover(self, controller):
        changes = []
        controller.on_change(lambda: changes.append(1))
        controller.pointer_move(100.0, 100.0)

        controller.pointer_leave()

        assert controller.highlight.active_node_id is None
        assert controller.highlight.connected_ids == frozenset()
        assert controller.pointer is None
        assert len(changes) == 2

    def test_hover_frozen_while_dragging(self, controller):
        controller.pointer_move(100.0, 100.0)
        controller.pointer_down(100.0, 100.0)

        controller.pointer_move(300.0, 100.0)
        controller.hover("C")

        assert controller.highlight.active_node_id == "A"


class TestPanZoom:
    def test_pan_on_empty_space(self, controller, graph):
        before = graph.pos.copy()

        controller.pointer_down(700.0, 500.0)
        assert controller.state is InteractionState.PANNING
        controller.pointer_move(710.0, 520.0)
        controller.pointer_move(715.0, 525.0)
        controller.pointer_up(715.0, 525.0)

        assert (controller.viewport.tx, controller.viewport.ty) == (15.0, 25.0)
        assert controller.state is InteractionState.IDLE
        assert (graph.pos == before).all()

    def test_wheel_zooms_around_pointer(self, controller):
        controller.wheel(200.0, 100.0, 1)

        assert controller.viewport.scale == pytest.approx(1.2)
        assert controller.viewport.to_world(200.0, 100.0) == pytest.approx((200.0, 100.0))

        controller.wheel(200.0, 100.0, 50)
        assert controller.viewport.scale == 4.0
        controller.wheel(200.0, 100.0, -100)
        assert controller.viewport.scale == 0.1

    def test_resize_keeps_content_reachable(self, controller):
        controller.viewport.pan_by(-5000.0, 0.0)

        controller.resize(800.0, 600.0)

        # right edge of A..C including node radii is x = 310
        assert controller.viewport.to_screen(310.0, 0.0)[0] == pytest.approx(40.0)
        assert controller.viewport.scale == 1.0

    def test_zero_size_surface(self, controller, simulator):
        controller.resize(0.0, 0.0)

        assert controller.surface == (800.0, 600.0)
        assert simulator.center == (400.0, 300.0)
