import random

import pytest

from diagmaker.graph import (
    AnchorIndex,
    GraphInvariantError,
    anchor_to_node_index,
    to_anchor_index,
)


def build(store, *texts):
    for i, text in enumerate(texts):
        store.append_node(text, (float(i) * 3, 0.0))
    return store


class TestIndexConventions:
    def test_anchor_index_skips_cursor_slot(self):
        assert to_anchor_index(0) == 1
        assert anchor_to_node_index(AnchorIndex(3)) == 2


class TestInsert:
    def test_scenario_a(self, store, consistent):
        store.append_node("Hello, world!", (0.0, 1.0))
        store.append_node("Second", (2.0, 1.0))
        assert store.node_count == 2
        assert len(store.anchors) == 3
        assert store.position_of(0) == (0.0, 1.0)
        consistent(store)

    def test_anchor_scale_is_box_size(self, store):
        store.append_node("Hello", (0.0, 0.0))
        assert store.anchor_for(0).scale == pytest.approx((1.3, 1.0))

    def test_text_runs_are_prefix_sums(self, store, consistent):
        build(store, "a", "b\nc\nd", "e\nf")
        assert [n.text_run for n in store.nodes] == [(0, 1), (1, 3), (4, 2)]
        consistent(store)

    def test_insert_in_middle_shifts_later_runs(self, store, renderer, consistent):
        build(store, "a", "b\nc", "d")
        store.insert_node_at(1, "x\ny\nz", (9.0, 9.0))
        assert [n.text for n in store.nodes] == ["a", "x\ny\nz", "b\nc", "d"]
        assert [n.text_run for n in store.nodes] == [(0, 1), (1, 3), (4, 2), (6, 1)]
        # fragments of the inserted node are in reversed display order
        assert [f.text for f in store.fragments_for(1)] == ["z", "y", "x"]
        assert [f.text for f in store.fragments_for(2)] == ["c", "b"]
        assert store.position_of(1) == (9.0, 9.0)
        consistent(store)

    def test_insert_at_front(self, store, consistent):
        build(store, "a", "b")
        store.insert_node_at(0, "first", (0.0, 0.0))
        assert [n.text for n in store.nodes] == ["first", "a", "b"]
        consistent(store)

    def test_insert_in_middle_keeps_connections_on_same_nodes(self, store, consistent):
        build(store, "a", "b", "c")
        store.connect(0, 1)
        store.connect(2, 0)
        store.insert_node_at(1, "new", (0.0, 5.0))
        assert store.edge_targets(0) == [2]
        assert store.edge_targets(3) == [0]
        assert store.edge_targets(1) == []
        assert [(o.source, o.target) for o in store.overlays] == [(0, 2), (3, 0)]
        consistent(store)

    def test_fragment_positions_follow_anchor(self, store):
        store.append_node("Hello", (2.0, 3.0))
        frag = store.fragments_for(0)[0]
        assert frag.position == pytest.approx((2.0 - 0.65 + 0.4, 3.0 - 0.5 + 0.4))

    def test_insert_index_out_of_range(self, store):
        build(store, "a")
        with pytest.raises(IndexError):
            store.insert_node_at(2, "x", (0.0, 0.0))
        with pytest.raises(IndexError):
            store.insert_node_at(-1, "x", (0.0, 0.0))

    def test_bad_position(self, store):
        with pytest.raises(ValueError):
            store.append_node("x", (1.0, 2.0, 3.0))

    def test_text_is_clamped(self, store):
        node = store.append_node("y" * 2000, (0.0, 0.0))
        assert len(node.text) == 1024


class TestRemove:
    def test_remove_rebases_text_runs(self, store, renderer, consistent):
        build(store, "a", "b\nc\nd", "e\nf", "g")
        store.remove_node_at(1)
        assert [n.text for n in store.nodes] == ["a", "e\nf", "g"]
        assert [n.text_run for n in store.nodes] == [(0, 1), (1, 2), (3, 1)]
        assert [f.text for f in store.fragments] == ["a", "f", "e", "g"]
        consistent(store)

    def test_remove_cascades_edges_and_overlays(self, store, consistent):
        build(store, "n0", "n1", "n2", "n3")
        store.connect(0, 2)
        store.connect(1, 2)
        store.connect(3, 1)
        store.connect(3, 3)
        store.connect(0, 3)

        store.remove_node_at(2)

        assert store.node(0).edges == [3]
        assert store.node(1).edges == []
        assert store.node(2).edges == [2, 3]
        assert store.edge_targets(2) == [1, 2]
        assert [(o.source, o.target) for o in store.overlays] == [(2, 1), (2, 2), (0, 2)]
        consistent(store)

    def test_remove_drops_edges_to_removed_node_entirely(self, store, consistent):
        build(store, "A", "B")
        store.connect(1, 0)
        store.remove_node_at(0)
        assert store.node(0).text == "B"
        assert store.node(0).edges == []
        assert store.overlays == []
        consistent(store)

    def test_remove_destroys_visuals(self, store, renderer, consistent):
        build(store, "a\nb", "c")
        store.connect(0, 1)
        node_visual = store.anchor_for(0).visual
        text_visuals = [f.visual for f in store.fragments_for(0)]
        line_visual = store.overlays[0].visual

        store.remove_node_at(0)

        for handle in [node_visual, line_visual, *text_visuals]:
            assert handle in renderer.destroyed
        consistent(store)

    def test_remove_last_node(self, store, consistent):
        build(store, "a")
        store.remove_node_at(0)
        assert store.node_count == 0
        assert len(store.anchors) == 1
        assert store.fragments == []
        consistent(store)

    def test_stale_index_rejected(self, store):
        build(store, "a", "b")
        store.remove_node_at(1)
        with pytest.raises(IndexError):
            store.remove_node_at(1)
        with pytest.raises(IndexError):
            store.node(-1)
        with pytest.raises(IndexError):
            store.move_node(5, (1.0, 1.0))
        with pytest.raises(IndexError):
            store.connect(0, 1)


class TestSelectionFollowsMutations:
    def test_selected_node_deleted(self, store, context):
        build(store, "a", "b")
        context.selected = 1
        store.remove_node_at(1)
        assert context.selected is None

    def test_selected_index_shifts(self, store, context):
        build(store, "a", "b", "c")
        context.selected = 2
        store.remove_node_at(0)
        assert context.selected == 1
        store.insert_node_at(0, "z", (0.0, 0.0))
        assert context.selected == 2
        store.append_node("tail", (0.0, 0.0))
        assert context.selected == 2

    def test_text_update_keeps_selection(self, store, context):
        build(store, "a", "b")
        context.selected = 0
        store.update_node_text(0, "changed")
        assert context.selected == 0


class TestUpdateText:
    def test_rebuild_preserves_event_edges_and_position(self, store, consistent):
        build(store, "a", "b", "c")
        store.set_event(1, "open_door")
        store.connect(1, 2)
        store.connect(1, 0)
        store.set_node_position(1, (4.0, -2.0))

        store.update_node_text(1, "one\ntwo\nthree")

        node = store.node(1)
        assert node.text == "one\ntwo\nthree"
        assert node.event == "open_door"
        assert store.edge_targets(1) == [2, 0]
        assert store.position_of(1) == (4.0, -2.0)
        assert [f.text for f in store.fragments_for(1)] == ["three", "two", "one"]
        assert [n.text_run for n in store.nodes] == [(0, 1), (1, 3), (4, 1)]
        consistent(store)

    def test_incoming_connections_survive_rebuild(self, store, consistent):
        build(store, "a", "b", "c")
        store.connect(0, 1)
        store.connect(2, 1)
        store.update_node_text(1, "b\nb")
        assert store.edge_targets(0) == [1]
        assert store.edge_targets(2) == [1]
        assert [(o.source, o.target) for o in store.overlays] == [(0, 1), (2, 1)]
        consistent(store)

    def test_rebuild_replaces_visuals(self, store, renderer):
        build(store, "a")
        old_visual = store.anchor_for(0).visual
        old_text = store.fragments_for(0)[0].visual
        store.update_node_text(0, "b")
        assert old_visual in renderer.destroyed
        assert old_text in renderer.destroyed
        assert store.anchor_for(0).visual != old_visual

    def test_edges_are_copied(self, store):
        build(store, "a", "b")
        store.connect(0, 1)
        old_edges = store.node(0).edges
        store.update_node_text(0, "c")
        store.node(0).edges.append(AnchorIndex(1))
        assert old_edges == [2]


class TestInPlaceEdits:
    def test_move_node_moves_fragments(self, store, renderer):
        build(store, "a\nb", "c")
        before = [f.position for f in store.fragments_for(0)]
        other = store.fragments_for(1)[0].position

        store.move_node(0, (1.0, -0.5))

        assert store.position_of(0) == pytest.approx((1.0, -0.5))
        after = [f.position for f in store.fragments_for(0)]
        assert after == pytest.approx([(x + 1.0, y - 0.5) for x, y in before])
        assert store.fragments_for(1)[0].position == other
        assert renderer.positions[store.anchor_for(0).visual] == pytest.approx((1.0, -0.5))

    def test_set_node_position(self, store):
        build(store, "a")
        store.set_node_position(0, (7.0, 8.0))
        assert store.position_of(0) == pytest.approx((7.0, 8.0))

    def test_set_event_has_no_structural_effect(self, store, renderer):
        build(store, "a")
        visual = store.anchor_for(0).visual
        store.set_event(0, "quest_start")
        assert store.node(0).event == "quest_start"
        assert store.anchor_for(0).visual == visual

    def test_move_cursor(self, store, renderer):
        store.move_cursor((3.0, 4.0))
        assert store.cursor.position == (3.0, 4.0)
        assert renderer.positions[store.cursor.visual] == (3.0, 4.0)


class TestQueries:
    def test_node_at(self, store):
        store.append_node("Hello", (0.0, 0.0))  # 1.3 x 1.0
        store.append_node("Hello", (5.0, 0.0))
        assert store.node_at((0.6, 0.4)) == 0
        assert store.node_at((5.0, 0.0)) == 1
        assert store.node_at((0.7, 0.0)) is None
        assert store.node_at((2.5, 0.0)) is None

    def test_node_at_prefers_highest_index(self, store):
        store.append_node("Hello", (0.0, 0.0))
        store.append_node("Hello", (0.2, 0.0))
        assert store.node_at((0.1, 0.0)) == 1

    def test_sync_lines_tracks_anchor_positions(self, store, renderer):
        build(store, "a", "b")
        overlay = store.connect(0, 1)
        store.move_node(1, (0.0, 2.0))
        store.sync_lines()
        assert renderer.lines[overlay.visual] == (store.position_of(0), store.position_of(1))

    def test_line_segments(self, store):
        build(store, "a", "b")
        store.connect(1, 0)
        assert store.line_segments() == [(store.position_of(1), store.position_of(0))]


class TestClear:
    def test_clear_keeps_cursor(self, store, renderer, consistent):
        build(store, "a", "b\nc")
        store.connect(0, 1)
        cursor = store.cursor.visual
        store.clear()
        assert store.node_count == 0
        assert store.anchors[0].visual == cursor
        assert store.overlays == []
        consistent(store)


class TestInvariants:
    def test_detects_bad_text_run(self, store):
        build(store, "a", "b")
        store.nodes[1].beginning_text_index = 5
        with pytest.raises(GraphInvariantError):
            store.check_invariants()

    def test_detects_dangling_edge(self, store):
        build(store, "a")
        store.nodes[0].edges.append(AnchorIndex(4))
        with pytest.raises(GraphInvariantError):
            store.check_invariants()

    def test_detects_missing_anchor(self, store):
        build(store, "a")
        store.anchors.pop()
        with pytest.raises(GraphInvariantError):
            store.check_invariants()

    @pytest.mark.parametrize("seed", range(8))
    def test_random_mutations_keep_invariants(self, store, consistent, seed):
        rng = random.Random(seed)
        words = ["a", "b\nc", "", "x\n\ny\nz", "long line here"]
        for _ in range(120):
            count = store.node_count
            op = rng.choice(["insert", "insert", "remove", "update", "connect", "move"])
            if op == "insert":
                store.insert_node_at(rng.randint(0, count), rng.choice(words), (rng.random(), rng.random()))
            elif count == 0:
                continue
            elif op == "remove":
                store.remove_node_at(rng.randrange(count))
            elif op == "update":
                store.update_node_text(rng.randrange(count), rng.choice(words))
            elif op == "connect":
                store.connect(rng.randrange(count), rng.randrange(count))
            else:
                store.move_node(rng.randrange(count), (0.1, -0.1))
            consistent(store)
            for overlay in store.overlays:
                assert to_anchor_index(overlay.target) in store.node(overlay.source).edges


class TestDeferredRelease:
    def test_visuals_kept_while_frame_in_flight(self, store, renderer, context):
        build(store, "a")
        visual = store.anchor_for(0).visual
        frame = context.release_queue.frame_submitted()

        store.remove_node_at(0)
        assert visual in renderer.live
        store.check_invariants()

        context.release_queue.frame_completed(frame)
        assert visual not in renderer.live
