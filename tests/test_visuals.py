from __future__ import annotations

import json

import pytest

from orb.core.errors import MalformedVisualPayload
from orb.core.markers import find_visual_marker
from orb.core.visuals import (
    ChartPayload,
    GraphPayload,
    MindMapPayload,
    TablePayload,
    VisualKind,
    VisualRecord,
    extract_marker,
    extract_visual,
    visual_title,
)


def test_table_round_trip_is_idempotent() -> None:
    marker = find_visual_marker('Result: [TABLE:{"rows":[[1,2]]}]')
    assert marker is not None
    record = extract_marker(marker)
    assert record.kind is VisualKind.TABLE
    assert record.title == "Data Table"
    assert record.payload.to_dict() == {"rows": [[1, 2]]}

    again = extract_visual(VisualKind.TABLE, json.dumps(record.payload.to_dict()))
    assert again == record


def test_table_with_headers() -> None:
    record = extract_visual("table", '{"headers": ["name", "age"], "rows": [["Ada", 36], ["Alan", 41]]}')
    assert isinstance(record.payload, TablePayload)
    assert record.payload.headers == ("name", "age")
    assert record.payload.rows[1] == ("Alan", 41)


def test_table_columns_alias() -> None:
    record = extract_visual(VisualKind.TABLE, '{"columns": ["a"], "rows": [[1]]}')
    assert record.payload.to_dict() == {"headers": ["a"], "rows": [[1]]}


def test_chart_series_form() -> None:
    raw = '{"labels": ["q1", "q2"], "series": [{"name": "sales", "values": [3, 4.5]}]}'
    record = extract_visual(VisualKind.CHART, raw, subtype="bar")
    assert record.title == "bar Chart"
    assert isinstance(record.payload, ChartPayload)
    assert record.payload.subtype == "bar"
    assert record.payload.series[0].values == (3, 4.5)
    assert record.payload.to_dict() == json.loads(raw)
    assert record.to_dict()["subtype"] == "bar"


def test_chart_datasets_and_data_shorthand() -> None:
    datasets = extract_visual(
        VisualKind.CHART,
        '{"labels": ["a", "b"], "datasets": [{"label": "x", "data": [1, 2]}, {"data": [3, 4]}]}',
        subtype="line",
    )
    assert [s.name for s in datasets.payload.series] == ["x", "Series 2"]
    shorthand = extract_visual(VisualKind.CHART, '{"labels": ["a"], "data": [7]}', subtype="pie")
    assert shorthand.payload.series[0].values == (7,)


@pytest.mark.parametrize(
    "raw",
    [
        '{"labels": ["a"]}',
        '{"labels": ["a"], "series": []}',
        '{"series": [{"values": [1]}]}',
        '{"labels": ["a", "b"], "data": [1]}',
        '{"labels": ["a"], "data": ["one"]}',
        '{"labels": ["a"], "data": [true]}',
    ],
)
def test_chart_without_usable_series_is_malformed(raw) -> None:
    with pytest.raises(MalformedVisualPayload) as info:
        extract_visual(VisualKind.CHART, raw, subtype="bar")
    assert info.value.kind is VisualKind.CHART


def test_chart_requires_subtype() -> None:
    with pytest.raises(MalformedVisualPayload):
        extract_visual(VisualKind.CHART, '{"labels": ["a"], "data": [1]}')


def test_graph_nodes_and_edges() -> None:
    record = extract_visual(
        VisualKind.GRAPH,
        '{"nodes": ["a", {"id": "b", "label": "Bee"}], "links": [{"source": "a", "target": "b"}]}',
    )
    assert record.title == "Graph Visualization"
    assert isinstance(record.payload, GraphPayload)
    assert record.payload.nodes[1].label == "Bee"
    assert record.payload.to_dict()["edges"] == [{"source": "a", "target": "b"}]


@pytest.mark.parametrize(
    "raw",
    [
        '{"nodes": []}',
        '{"edges": []}',
        '{"nodes": ["a"], "edges": [{"source": "a", "target": "z"}]}',
        '{"nodes": ["a", "a"]}',
        '{"nodes": ["a"], "edges": [{"source": {"x": 1}, "target": "a"}]}',
    ],
)
def test_invalid_graph(raw) -> None:
    with pytest.raises(MalformedVisualPayload):
        extract_visual(VisualKind.GRAPH, raw)


def test_mind_map() -> None:
    raw = '{"center": "Python", "branches": [{"label": "Web", "children": ["FastAPI", {"label": "Django"}]}, "Data"]}'
    record = extract_visual(VisualKind.MIND_MAP, raw)
    assert record.title == "Mind Map"
    assert isinstance(record.payload, MindMapPayload)
    assert record.payload.center == "Python"
    assert record.payload.branches[0].children == ("FastAPI", "Django")
    assert record.payload.branches[1].children == ()


@pytest.mark.parametrize("raw", ['{"branches": ["a"]}', '{"center": "x"}', '{"center": "x", "branches": []}'])
def test_invalid_mind_map(raw) -> None:
    with pytest.raises(MalformedVisualPayload):
        extract_visual(VisualKind.MIND_MAP, raw)


def test_tree_map_recursion() -> None:
    raw = '{"name": "disk", "children": [{"name": "docs", "value": 3}, {"name": "src", "children": [{"name": "a.py", "value": 1}]}]}'
    record = extract_visual(VisualKind.TREE_MAP, raw)
    assert record.title == "Tree Map"
    assert record.payload.to_dict() == json.loads(raw)


def test_tree_map_leaf_needs_value() -> None:
    with pytest.raises(MalformedVisualPayload):
        extract_visual(VisualKind.TREE_MAP, '{"name": "root", "children": [{"name": "empty"}]}')


def test_code_image_and_search_payloads() -> None:
    code = extract_visual(VisualKind.CODE_VIEW, '{"language": "python", "code": "print(1)"}')
    assert code.title == "Code View"
    assert code.payload.code == "print(1)"

    image = extract_visual(VisualKind.IMAGE, '{"url": "https://example.org/cat.png"}')
    assert image.payload.to_dict() == {"url": "https://example.org/cat.png"}

    search = extract_visual(
        VisualKind.SEARCH_RESULT,
        '{"query": "orb", "results": [{"title": "Orb", "url": "https://example.org"}]}',
    )
    assert search.title == "Search Results"
    assert search.payload.results[0].snippet is None


@pytest.mark.parametrize(
    "kind, raw",
    [
        (VisualKind.TABLE, "{not-json}"),
        (VisualKind.TABLE, "[1, 2]"),
        (VisualKind.TABLE, '{"rows": [1, 2]}'),
        (VisualKind.TABLE, '{"rows": [[{"nested": true}]]}'),
        (VisualKind.TABLE, '{"headers": ["a", "b"], "rows": [[1]]}'),
        (VisualKind.CODE_VIEW, '{"language": "go"}'),
        (VisualKind.IMAGE, '{"alt": "missing url"}'),
        (VisualKind.SEARCH_RESULT, '{"results": [{"url": "https://x"}]}'),
    ],
)
def test_malformed_payloads(kind, raw) -> None:
    with pytest.raises(MalformedVisualPayload) as info:
        extract_visual(kind, raw)
    assert info.value.reason


def test_unknown_kind_is_malformed() -> None:
    with pytest.raises(MalformedVisualPayload):
        extract_visual("hologram", "{}")


def test_titles_are_deterministic() -> None:
    assert visual_title(VisualKind.CHART, "line") == visual_title(VisualKind.CHART, "line") == "line Chart"
    assert visual_title(VisualKind.MIND_MAP) == "Mind Map"
    assert visual_title(VisualKind.TABLE) == "Data Table"


def test_record_rejects_mismatched_payload() -> None:
    table = extract_visual(VisualKind.TABLE, '{"rows": []}')
    with pytest.raises(TypeError):
        VisualRecord(kind=VisualKind.CHART, title="x", payload=table.payload)
