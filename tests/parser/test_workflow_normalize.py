import json

from pxt_backend.features.workflow.normalize import (
    build_link_table,
    is_link_pair,
    normalize_workflow,
    resolve_link,
    unwrap_workflow,
)

ARRAY_WORKFLOW = {
    "nodes": [
        {
            "id": 4,
            "type": "CheckpointLoaderSimple",
            "widgets_values": ["sdxl.safetensors"],
            "outputs": [{"name": "MODEL", "links": [1]}, {"name": "CLIP", "links": [2]}],
        },
        {
            "id": 6,
            "type": "CLIPTextEncode",
            "title": "Positive",
            "inputs": [{"name": "clip", "type": "CLIP", "link": 2}],
            "widgets_values": ["a castle"],
        },
        {
            "id": 3,
            "type": "KSampler",
            "inputs": [
                {"name": "model", "link": 1},
                {"name": "positive", "link": 3},
                {"name": "negative", "link": None},
            ],
            "widgets_values": [7, "fixed", 25, 6.0, "euler", "normal", 1.0],
        },
    ],
    "links": [
        [1, 4, 0, 3, 0, "MODEL"],
        [2, 4, 1, 6, 0, "CLIP"],
        [3, 6, 0, 3, 1, "CONDITIONING"],
    ],
}


def test_array_encoding_becomes_node_map():
    graph = normalize_workflow(ARRAY_WORKFLOW)
    assert graph is not None
    assert graph.encoding == "array"
    assert set(graph.nodes) == {"3", "4", "6"}

    sampler = graph.nodes["3"]
    assert sampler["class_type"] == "KSampler"
    assert sampler["inputs"]["model"] == {"link": 1}
    assert "negative" not in sampler["inputs"]
    assert sampler["inputs"]["seed"] == 7
    assert sampler["inputs"]["steps"] == 25
    assert sampler["inputs"]["sampler_name"] == "euler"

    assert graph.nodes["4"]["inputs"]["ckpt_name"] == "sdxl.safetensors"
    assert graph.nodes["6"]["inputs"]["text"] == "a castle"
    assert graph.nodes["6"]["_meta"] == {"title": "Positive"}


def test_links_resolve_to_origin_nodes():
    graph = normalize_workflow(ARRAY_WORKFLOW)
    assert resolve_link(graph, 3) == "6"
    assert resolve_link(graph, "1") == "4"
    assert resolve_link(graph, 99) is None
    assert resolve_link(graph, None) is None
    assert graph.source_of({"link": 2}) == "4"
    assert graph.source_of("literal") is None


def test_ordered_items_sort_numerically():
    graph = normalize_workflow(ARRAY_WORKFLOW)
    assert [node_id for node_id, _ in graph.ordered_items()] == ["3", "4", "6"]


def test_map_encoding_keeps_inline_edges():
    graph = normalize_workflow({"10": {"class_type": "KSampler", "inputs": {"positive": ["2", 0]}}, "2": {"class_type": "CLIPTextEncode"}})
    assert graph.encoding == "map"
    assert graph.nodes["2"]["inputs"] == {}
    assert graph.source_of(graph.nodes["10"]["inputs"]["positive"]) == "2"
    assert [k for k, _ in graph.ordered_items()] == ["2", "10"]


def test_wrappers_are_unwrapped():
    inner = {"1": {"class_type": "SaveImage", "inputs": {}}}
    assert unwrap_workflow({"prompt": json.dumps(inner)}) == inner
    assert unwrap_workflow({"workflow": {"prompt": inner}}) == inner
    assert unwrap_workflow({"extra_pnginfo": {"workflow": json.dumps(ARRAY_WORKFLOW)}}) == ARRAY_WORKFLOW
    assert unwrap_workflow({"prompt": "not json"}) is None
    assert unwrap_workflow("text") is None


def test_node_list_shape():
    graph = normalize_workflow([{"class_type": "A", "inputs": {"x": 1}}, {"no": "type"}])
    assert graph.nodes == {"0": {"class_type": "A", "inputs": {"x": 1}}}


def test_nothing_graph_like_gives_none():
    assert normalize_workflow({"nodes": [{"type": "NoId"}]}) is None
    assert normalize_workflow({"title": "x"}) is None
    assert normalize_workflow(None) is None


def test_link_table_accepts_object_links():
    table = build_link_table([
        {"id": 5, "origin_id": 1, "origin_slot": 0, "target_id": 2, "target_slot": 1, "type": "LATENT"},
        [6, 2, 0, 3, 0],
        ["bad", 1, 0, 2, 0, "X"],
        "junk",
    ])
    assert set(table) == {5, 6}
    assert table[5].origin_id == "1"
    assert table[5].target_slot == 1
    assert table[6].type_name == ""


def test_declared_widget_inputs_for_unknown_node_types():
    workflow = {
        "nodes": [
            {
                "id": 1,
                "type": "CustomSampler",
                "inputs": [
                    {"name": "model", "link": None},
                    {"name": "steps", "widget": {"name": "steps"}, "link": None},
                    {"name": "cfg", "widget": {"name": "cfg"}, "link": None},
                ],
                "widgets_values": [30, 4.5],
            }
        ]
    }
    graph = normalize_workflow(workflow)
    assert graph.nodes["1"]["inputs"] == {"steps": 30, "cfg": 4.5}


def test_link_pair_shape():
    assert is_link_pair(["4", 0])
    assert is_link_pair([4, 1])
    assert not is_link_pair(["a", 0])
    assert not is_link_pair([True, 0])
    assert not is_link_pair(["4", "0"])
