"""Typed visual records and the payload extractor.

Each visual kind owns a frozen payload type. ``extract_visual`` is the only
producer of :class:`VisualRecord`: it decodes the JSON text found inside a
marker, checks the fields the kind requires and builds the matching payload,
or raises :class:`MalformedVisualPayload`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

from orb.core.errors import MalformedVisualPayload

if TYPE_CHECKING:
    from orb.core.markers import VisualMarker


class VisualKind(str, Enum):
    MIND_MAP = "mind_map"
    TREE_MAP = "tree_map"
    GRAPH = "graph"
    CHART = "chart"
    TABLE = "table"
    CODE_VIEW = "code_view"
    IMAGE = "image"
    SEARCH_RESULT = "search_result"


_FIXED_TITLES: dict[VisualKind, str] = {
    VisualKind.GRAPH: "Graph Visualization",
    VisualKind.MIND_MAP: "Mind Map",
    VisualKind.TABLE: "Data Table",
    VisualKind.TREE_MAP: "Tree Map",
    VisualKind.CODE_VIEW: "Code View",
    VisualKind.IMAGE: "Image",
    VisualKind.SEARCH_RESULT: "Search Results",
}

Scalar = Union[str, int, float, bool, None]


@dataclass(frozen=True, slots=True)
class ChartSeries:
    name: str
    values: tuple[int | float, ...]


@dataclass(frozen=True, slots=True)
class ChartPayload:
    subtype: str
    labels: tuple[Scalar, ...]
    series: tuple[ChartSeries, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "labels": list(self.labels),
            "series": [{"name": s.name, "values": list(s.values)} for s in self.series],
        }


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: str
    label: str | None = None


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: str
    target: str
    label: str | None = None


@dataclass(frozen=True, slots=True)
class GraphPayload:
    nodes: tuple[GraphNode, ...]
    edges: tuple[GraphEdge, ...]

    def to_dict(self) -> dict[str, Any]:
        nodes = [_without_none({"id": n.id, "label": n.label}) for n in self.nodes]
        edges = [_without_none({"source": e.source, "target": e.target, "label": e.label}) for e in self.edges]
        return {"nodes": nodes, "edges": edges}


@dataclass(frozen=True, slots=True)
class MindMapBranch:
    label: str
    children: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MindMapPayload:
    center: str
    branches: tuple[MindMapBranch, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "center": self.center,
            "branches": [{"label": b.label, "children": list(b.children)} for b in self.branches],
        }


@dataclass(frozen=True, slots=True)
class TablePayload:
    rows: tuple[tuple[Scalar, ...], ...]
    headers: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.headers is not None:
            data["headers"] = list(self.headers)
        data["rows"] = [list(row) for row in self.rows]
        return data


@dataclass(frozen=True, slots=True)
class TreeMapNode:
    name: str
    value: int | float | None = None
    children: tuple["TreeMapNode", ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.value is not None:
            data["value"] = self.value
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True, slots=True)
class CodePayload:
    code: str
    language: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _without_none({"code": self.code, "language": self.language})


@dataclass(frozen=True, slots=True)
class ImagePayload:
    url: str
    alt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _without_none({"url": self.url, "alt": self.alt})


@dataclass(frozen=True, slots=True)
class SearchHit:
    title: str
    url: str | None = None
    snippet: str | None = None


@dataclass(frozen=True, slots=True)
class SearchResultPayload:
    results: tuple[SearchHit, ...]
    query: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.query is not None:
            data["query"] = self.query
        data["results"] = [
            _without_none({"title": hit.title, "url": hit.url, "snippet": hit.snippet}) for hit in self.results
        ]
        return data


VisualPayload = Union[
    ChartPayload,
    GraphPayload,
    MindMapPayload,
    TablePayload,
    TreeMapNode,
    CodePayload,
    ImagePayload,
    SearchResultPayload,
]

_PAYLOAD_TYPES: dict[VisualKind, type] = {
    VisualKind.CHART: ChartPayload,
    VisualKind.GRAPH: GraphPayload,
    VisualKind.MIND_MAP: MindMapPayload,
    VisualKind.TABLE: TablePayload,
    VisualKind.TREE_MAP: TreeMapNode,
    VisualKind.CODE_VIEW: CodePayload,
    VisualKind.IMAGE: ImagePayload,
    VisualKind.SEARCH_RESULT: SearchResultPayload,
}


@dataclass(frozen=True, slots=True)
class VisualRecord:
    """Parsed visual content attached to a reply."""

    kind: VisualKind
    title: str
    payload: VisualPayload

    def __post_init__(self) -> None:
        expected = _PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise TypeError(f"{self.kind.value} visual requires a {expected.__name__} payload")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "title": self.title,
            "payload": self.payload.to_dict(),
        }
        if isinstance(self.payload, ChartPayload):
            data["subtype"] = self.payload.subtype
        return data


def visual_title(kind: VisualKind, subtype: str | None = None) -> str:
    """Display title of a visual; depends only on its kind and chart subtype."""
    if kind is VisualKind.CHART:
        return f"{subtype} Chart"
    return _FIXED_TITLES[kind]


# --------------------------------------------------------------------------- #
# Field helpers
# --------------------------------------------------------------------------- #
def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _fail(kind: VisualKind, reason: str) -> MalformedVisualPayload:
    return MalformedVisualPayload(kind, reason)


def _text(kind: VisualKind, data: dict[str, Any], key: str, *, required: bool = True) -> str | None:
    value = data.get(key)
    if value is None:
        if required:
            raise _fail(kind, f"missing '{key}'")
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise _fail(kind, f"'{key}' must be a non-empty string")
    return value


def _list(kind: VisualKind, data: dict[str, Any], *keys: str, required: bool = True) -> list[Any] | None:
    for key in keys:
        if key in data:
            value = data[key]
            if not isinstance(value, list):
                raise _fail(kind, f"'{key}' must be a list")
            return value
    if required:
        raise _fail(kind, f"missing '{keys[0]}'")
    return None


def _label_of(kind: VisualKind, item: Any, *keys: str) -> str:
    if isinstance(item, str) and item.strip():
        return item
    if isinstance(item, dict):
        for key in keys:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value
    raise _fail(kind, f"expected a string or an object with '{keys[0]}'")


# --------------------------------------------------------------------------- #
# Per-kind builders
# --------------------------------------------------------------------------- #
def _number_list(kind: VisualKind, values: Any, where: str) -> tuple[int | float, ...]:
    if not isinstance(values, list) or not values:
        raise _fail(kind, f"{where} must be a non-empty list of numbers")
    if not all(_is_number(v) for v in values):
        raise _fail(kind, f"{where} must only contain numbers")
    return tuple(values)


def _build_chart(data: dict[str, Any], subtype: str | None) -> ChartPayload:
    kind = VisualKind.CHART
    if not subtype:
        raise _fail(kind, "chart subtype is required")
    labels = _list(kind, data, "labels")
    if not labels or not all(_is_scalar(label) for label in labels):
        raise _fail(kind, "'labels' must be a non-empty list of scalars")

    series: list[ChartSeries] = []
    if "series" in data:
        raw_series = _list(kind, data, "series") or []
        for index, item in enumerate(raw_series):
            if not isinstance(item, dict):
                raise _fail(kind, "each series must be an object")
            name = item.get("name")
            series.append(
                ChartSeries(
                    name=name if isinstance(name, str) else f"Series {index + 1}",
                    values=_number_list(kind, item.get("values"), "series values"),
                )
            )
    elif "datasets" in data:
        raw_sets = _list(kind, data, "datasets") or []
        for index, item in enumerate(raw_sets):
            if not isinstance(item, dict):
                raise _fail(kind, "each dataset must be an object")
            name = item.get("label")
            series.append(
                ChartSeries(
                    name=name if isinstance(name, str) else f"Series {index + 1}",
                    values=_number_list(kind, item.get("data"), "dataset data"),
                )
            )
    elif "data" in data:
        series.append(ChartSeries(name="Series 1", values=_number_list(kind, data.get("data"), "'data'")))

    if not series:
        raise _fail(kind, "chart has no data series")
    for item in series:
        if len(item.values) != len(labels):
            raise _fail(kind, f"series '{item.name}' has {len(item.values)} values for {len(labels)} labels")
    return ChartPayload(subtype=subtype, labels=tuple(labels), series=tuple(series))


def _build_graph(data: dict[str, Any], _subtype: str | None) -> GraphPayload:
    kind = VisualKind.GRAPH
    raw_nodes = _list(kind, data, "nodes")
    if not raw_nodes:
        raise _fail(kind, "graph has no nodes")
    nodes: list[GraphNode] = []
    for item in raw_nodes:
        if isinstance(item, dict):
            node_id = _label_of(kind, item, "id", "name")
            label = item.get("label")
            nodes.append(GraphNode(id=node_id, label=label if isinstance(label, str) else None))
        else:
            nodes.append(GraphNode(id=_label_of(kind, item, "id")))
    known = {node.id for node in nodes}
    if len(known) != len(nodes):
        raise _fail(kind, "node ids must be unique")

    edges: list[GraphEdge] = []
    for item in _list(kind, data, "edges", "links", required=False) or []:
        if not isinstance(item, dict):
            raise _fail(kind, "each edge must be an object")
        source = item.get("source", item.get("from"))
        target = item.get("target", item.get("to"))
        if not isinstance(source, str) or not isinstance(target, str) or source not in known or target not in known:
            raise _fail(kind, f"edge {source!r} -> {target!r} references an unknown node")
        label = item.get("label")
        edges.append(GraphEdge(source=source, target=target, label=label if isinstance(label, str) else None))
    return GraphPayload(nodes=tuple(nodes), edges=tuple(edges))


def _build_mind_map(data: dict[str, Any], _subtype: str | None) -> MindMapPayload:
    kind = VisualKind.MIND_MAP
    center = _text(kind, data, "center") or ""
    raw_branches = _list(kind, data, "branches")
    if not raw_branches:
        raise _fail(kind, "mind map has no branches")
    branches: list[MindMapBranch] = []
    for item in raw_branches:
        label = _label_of(kind, item, "label", "name")
        children: tuple[str, ...] = ()
        if isinstance(item, dict):
            raw_children = _list(kind, item, "children", required=False) or []
            children = tuple(_label_of(kind, child, "label", "name") for child in raw_children)
        branches.append(MindMapBranch(label=label, children=children))
    return MindMapPayload(center=center, branches=tuple(branches))


def _build_table(data: dict[str, Any], _subtype: str | None) -> TablePayload:
    kind = VisualKind.TABLE
    raw_rows = _list(kind, data, "rows")
    rows: list[tuple[Scalar, ...]] = []
    for row in raw_rows or []:
        if not isinstance(row, list) or not all(_is_scalar(cell) for cell in row):
            raise _fail(kind, "each row must be a list of scalars")
        rows.append(tuple(row))
    raw_headers = _list(kind, data, "headers", "columns", required=False)
    headers: tuple[str, ...] | None = None
    if raw_headers is not None:
        if not all(isinstance(h, str) for h in raw_headers):
            raise _fail(kind, "headers must be strings")
        headers = tuple(raw_headers)
        for row in rows:
            if len(row) != len(headers):
                raise _fail(kind, f"row of {len(row)} cells does not match {len(headers)} headers")
    return TablePayload(rows=tuple(rows), headers=headers)


def _build_tree_node(data: Any, depth: int = 0) -> TreeMapNode:
    kind = VisualKind.TREE_MAP
    if not isinstance(data, dict):
        raise _fail(kind, "tree map nodes must be objects")
    if depth > 32:
        raise _fail(kind, "tree map is nested too deeply")
    name = _text(kind, data, "name") or ""
    value = data.get("value")
    if value is not None and not _is_number(value):
        raise _fail(kind, f"value of '{name}' must be a number")
    children = tuple(_build_tree_node(child, depth + 1) for child in _list(kind, data, "children", required=False) or [])
    if value is None and not children:
        raise _fail(kind, f"node '{name}' needs a value or children")
    return TreeMapNode(name=name, value=value, children=children)


def _build_tree_map(data: dict[str, Any], _subtype: str | None) -> TreeMapNode:
    return _build_tree_node(data)


def _build_code(data: dict[str, Any], _subtype: str | None) -> CodePayload:
    kind = VisualKind.CODE_VIEW
    code = data.get("code")
    if not isinstance(code, str):
        raise _fail(kind, "missing 'code'")
    return CodePayload(code=code, language=_text(kind, data, "language", required=False))


def _build_image(data: dict[str, Any], _subtype: str | None) -> ImagePayload:
    kind = VisualKind.IMAGE
    return ImagePayload(url=_text(kind, data, "url") or "", alt=_text(kind, data, "alt", required=False))


def _build_search(data: dict[str, Any], _subtype: str | None) -> SearchResultPayload:
    kind = VisualKind.SEARCH_RESULT
    hits: list[SearchHit] = []
    for item in _list(kind, data, "results") or []:
        if not isinstance(item, dict):
            raise _fail(kind, "each result must be an object")
        hits.append(
            SearchHit(
                title=_text(kind, item, "title") or "",
                url=_text(kind, item, "url", required=False),
                snippet=_text(kind, item, "snippet", required=False),
            )
        )
    return SearchResultPayload(results=tuple(hits), query=_text(kind, data, "query", required=False))


_BUILDERS: dict[VisualKind, Callable[[dict[str, Any], str | None], VisualPayload]] = {
    VisualKind.CHART: _build_chart,
    VisualKind.GRAPH: _build_graph,
    VisualKind.MIND_MAP: _build_mind_map,
    VisualKind.TABLE: _build_table,
    VisualKind.TREE_MAP: _build_tree_map,
    VisualKind.CODE_VIEW: _build_code,
    VisualKind.IMAGE: _build_image,
    VisualKind.SEARCH_RESULT: _build_search,
}


def extract_visual(kind: VisualKind | str, raw_payload: str, *, subtype: str | None = None) -> VisualRecord:
    """Decode ``raw_payload`` into the visual record of ``kind``.

    Raises :class:`MalformedVisualPayload` when the text is not a JSON object or
    misses the fields the kind requires.
    """
    try:
        kind = VisualKind(kind)
    except ValueError:
        raise MalformedVisualPayload(kind, "unknown visual kind") from None
    try:
        data = json.loads(raw_payload)
    except (TypeError, ValueError) as exc:
        raise _fail(kind, f"invalid JSON ({exc})") from exc
    except RecursionError:
        raise _fail(kind, "payload nested too deeply") from None
    if not isinstance(data, dict):
        raise _fail(kind, "payload must be a JSON object")
    payload = _BUILDERS[kind](data, subtype)
    return VisualRecord(kind=kind, title=visual_title(kind, subtype), payload=payload)


def extract_marker(marker: "VisualMarker") -> VisualRecord:
    """Extract the visual carried by a marker found in a reply."""
    return extract_visual(marker.kind, marker.payload, subtype=marker.subtype)
