"""Contour map store: tool-driven merges and completeness scoring.

Every operation is copy-on-write. The map passed in is never mutated, so a
caller can drop the returned copy to discard a failed turn, or replay the
same call against the same input and get the same result.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

from ..models import (
    APPROVED_VERSION,
    ComparisonContent,
    ComparisonEntry,
    Conflict,
    ConflictStatus,
    ConflictValue,
    ContourMap,
    ContourOperation,
    DimensionType,
    FollowUpTask,
    HierarchyContent,
    HierarchyNode,
    HierarchyNodeType,
    PriorityQuery,
    Provenance,
    SOREntry,
    StateAction,
    StateActionType,
    TableContent,
    UploadedArtifact,
    VocabularyEntry,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

DEFAULT_CONFIDENCE = 0.8

WEIGHTS: dict[str, int] = {
    "hierarchy": 30,
    "sor": 20,
    "conflicts_resolved": 15,
    "management": 15,
    "vocabulary": 5,
    "queries": 10,
    "follow_ups": 5,
}


class StoreResult(BaseModel):
    """Outcome of applying one tool call to a contour map."""
    contour_map: ContourMap
    display: dict[str, Any] | None = None
    state_action: StateAction | None = None


# ---------------------------------------------------------------------------
# Lenient field coercion
# ---------------------------------------------------------------------------

def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = _str(data, key)
    return value or None


def _int(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if number != number:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, number))


def _enum(enum_cls: type[E], value: Any, default: E) -> E:
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


# ---------------------------------------------------------------------------
# Hierarchy forest helpers (explicit stacks, no recursion)
# ---------------------------------------------------------------------------

def iter_nodes(forest: list[HierarchyNode]) -> Iterator[HierarchyNode]:
    """Yield every node in pre-order."""
    stack = list(reversed(forest))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_node(forest: list[HierarchyNode], node_id: str) -> HierarchyNode | None:
    for node in iter_nodes(forest):
        if node.id == node_id:
            return node
    return None


def count_nodes(forest: list[HierarchyNode]) -> int:
    return sum(1 for _ in iter_nodes(forest))


def flatten_names(forest: list[HierarchyNode]) -> list[str]:
    return [node.name for node in iter_nodes(forest)]


class _ForestIndex:
    """id -> node and id -> parent id over one forest. First pre-order match wins."""

    def __init__(self, forest: list[HierarchyNode]) -> None:
        self.nodes: dict[str, HierarchyNode] = {}
        self.parents: dict[str, str | None] = {}
        stack: list[tuple[HierarchyNode, str | None]] = [(n, None) for n in reversed(forest)]
        while stack:
            node, parent_id = stack.pop()
            if node.id in self.nodes:
                continue
            self.nodes[node.id] = node
            self.parents[node.id] = parent_id
            stack.extend((child, node.id) for child in reversed(node.children))

    def is_descendant_or_self(self, candidate: str, ancestor: str) -> bool:
        seen: set[str] = set()
        current: str | None = candidate
        while current is not None and current not in seen:
            if current == ancestor:
                return True
            seen.add(current)
            current = self.parents.get(current)
        return False


def _copy_fields(target: HierarchyNode, source: HierarchyNode) -> None:
    for field in HierarchyNode.model_fields:
        if field != "children":
            setattr(target, field, getattr(source, field))


def _add_node(forest: list[HierarchyNode], node: HierarchyNode) -> None:
    index = _ForestIndex(forest)
    existing = index.nodes.get(node.id)
    if existing is not None:
        # Redelivered add: apply as an update instead of duplicating the node.
        _copy_fields(existing, node)
        return
    parent = index.nodes.get(node.parent_id) if node.parent_id else None
    if parent is not None and not index.is_descendant_or_self(parent.id, node.id):
        parent.children.append(node)
        return
    if node.parent_id:
        logger.debug("Parent %s not found for node %s, inserting at root", node.parent_id, node.id)
    forest.append(node)


def _update_node(forest: list[HierarchyNode], node: HierarchyNode) -> None:
    existing = find_node(forest, node.id)
    if existing is not None:
        _copy_fields(existing, node)


def _remove_node(forest: list[HierarchyNode], node_id: str) -> bool:
    stack = [(forest, i) for i in reversed(range(len(forest)))]
    while stack:
        siblings, i = stack.pop()
        node = siblings[i]
        if node.id == node_id:
            del siblings[i]
            return True
        stack.extend((node.children, j) for j in reversed(range(len(node.children))))
    return False


def _node_from_data(data: dict[str, Any], confidence: float, provenance: Provenance) -> HierarchyNode:
    return HierarchyNode(
        id=_str(data, "id") or new_id(),
        name=_str(data, "name"),
        type=_enum(HierarchyNodeType, data.get("type"), HierarchyNodeType.DIVISION),
        level=_int(data, "level"),
        parent_id=_opt_str(data, "parent_id"),
        children=[],
        source_system=_str(data, "source_system") or "stakeholder",
        source_field=_str(data, "source_field"),
        confidence=confidence,
        provenance=provenance,
        notes=_str(data, "notes"),
    )


# ---------------------------------------------------------------------------
# update_contour
# ---------------------------------------------------------------------------

def _apply_hierarchy(forest: list[HierarchyNode], op: ContourOperation, node: HierarchyNode) -> None:
    if op is ContourOperation.ADD:
        _add_node(forest, node)
    elif op is ContourOperation.UPDATE:
        _update_node(forest, node)
    elif op is ContourOperation.REMOVE:
        _remove_node(forest, node.id)


def _conflict_values(value: Any) -> list[ConflictValue]:
    if not isinstance(value, list):
        return []
    return [
        ConflictValue(system=_str(item, "system"), value=_str(item, "value"))
        for item in value
        if isinstance(item, dict)
    ]


def _update_contour(tool_input: dict[str, Any], contour_map: ContourMap) -> None:
    dimension = _enum(DimensionType, tool_input.get("dimension_type"), None)  # type: ignore[arg-type]
    op = _enum(ContourOperation, tool_input.get("operation") or "add", None)  # type: ignore[arg-type]
    data = _as_dict(tool_input.get("node_data"))
    confidence = _confidence(tool_input.get("confidence"))
    provenance = _enum(Provenance, tool_input.get("provenance"), Provenance.STAKEHOLDER_CONFIRMED)

    if dimension is None:
        logger.warning("update_contour: unknown dimension_type %r", tool_input.get("dimension_type"))
        return

    if dimension in (DimensionType.ORGANIZATIONAL_HIERARCHY, DimensionType.MANAGEMENT_OVERLAY):
        if op is None:
            logger.warning("update_contour: unknown operation %r", tool_input.get("operation"))
            return
        forest = getattr(contour_map, dimension.value)
        _apply_hierarchy(forest, op, _node_from_data(data, confidence, provenance))

    elif dimension is DimensionType.SOR_AUTHORITY_MAP:
        entry = SOREntry(
            dimension=_str(data, "dimension"),
            system=_str(data, "system"),
            confidence=confidence,
            confirmed_by=_opt_str(data, "confirmed_by"),
            conflicts=_str_list(data.get("conflicts")),
            notes=_str(data, "notes"),
        )
        entries = contour_map.sor_authority_map
        if op is ContourOperation.ADD:
            entries.append(entry)
        elif op is ContourOperation.UPDATE:
            for i, existing in enumerate(entries):
                if existing.dimension == entry.dimension:
                    entries[i] = entry
                    break
            else:
                entries.append(entry)

    elif dimension is DimensionType.CONFLICT_REGISTER:
        conflict = Conflict(
            id=_str(data, "id") or new_id(),
            dimension=_str(data, "dimension"),
            systems=_conflict_values(data.get("systems")),
            resolution=_opt_str(data, "resolution"),
            resolved_by=_opt_str(data, "resolved_by"),
            status=_enum(ConflictStatus, data.get("status"), ConflictStatus.OPEN),
        )
        conflicts = contour_map.conflict_register
        if op is ContourOperation.ADD:
            conflicts.append(conflict)
        elif op is ContourOperation.UPDATE:
            for i, existing in enumerate(conflicts):
                if existing.id == conflict.id:
                    conflicts[i] = conflict
                    break

    elif dimension is DimensionType.VOCABULARY_MAP:
        contour_map.vocabulary_map.append(VocabularyEntry(
            term=_str(data, "term"),
            meaning=_str(data, "meaning"),
            context=_str(data, "context"),
            system_equivalent=_opt_str(data, "system_equivalent"),
        ))

    elif dimension is DimensionType.PRIORITY_QUERIES:
        contour_map.priority_queries.append(PriorityQuery(
            id=_str(data, "id") or new_id(),
            question=_str(data, "question"),
            business_context=_str(data, "business_context"),
            frequency=_str(data, "frequency"),
            current_pain=_str(data, "current_pain"),
            priority=_int(data, "priority"),
        ))


def _park_item(
    tool_input: dict[str, Any], contour_map: ContourMap, section: str, now: datetime
) -> None:
    description = f"{_str(tool_input, 'dimension')}: {_str(tool_input, 'question')}"
    contour_map.follow_up_tasks.append(FollowUpTask(
        description=description,
        assigned_to=_opt_str(tool_input, "suggested_person"),
        section=section,
        created_at=now,
    ))


# ---------------------------------------------------------------------------
# Display payloads
# ---------------------------------------------------------------------------

def _comparison(tool_input: dict[str, Any]) -> dict[str, Any]:
    raw = [item for item in tool_input.get("systems") or [] if isinstance(item, dict)]
    values = Counter(_str(item, "value").strip().lower() for item in raw)
    systems = []
    for item in raw:
        key = _str(item, "value").strip().lower()
        is_match = item.get("is_match")
        if not isinstance(is_match, bool):
            is_match = values[key] > 1
        systems.append(ComparisonEntry(system=_str(item, "system"), value=_str(item, "value"), is_match=is_match))
    return ComparisonContent(dimension=_str(tool_input, "dimension"), systems=systems).model_dump()


def _table(tool_input: dict[str, Any]) -> dict[str, Any]:
    rows = [
        ["" if cell is None else str(cell) for cell in row]
        for row in tool_input.get("rows") or []
        if isinstance(row, list)
    ]
    return TableContent(
        title=_str(tool_input, "title"),
        headers=_str_list(tool_input.get("headers")),
        rows=rows,
    ).model_dump()


def _display(kind: str, tool_input: dict[str, Any]) -> dict[str, Any]:
    try:
        if kind == "comparison":
            return _comparison(tool_input)
        if kind == "hierarchy":
            return HierarchyContent.model_validate({**tool_input, "type": "hierarchy"}).model_dump()
        return _table(tool_input)
    except (ValidationError, TypeError) as exc:
        logger.warning("Malformed %s display payload, passing through: %s", kind, exc)
        return {**tool_input, "type": kind}


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def apply_tool_call(
    name: str,
    tool_input: dict[str, Any] | None,
    contour_map: ContourMap,
    *,
    section: str = "",
    now: datetime | None = None,
) -> StoreResult:
    """Apply one named tool call to *contour_map* and return the outcome.

    Never raises for malformed input, unknown dimensions, unknown operations
    or unknown tool names. Display and state tools return the input map
    unchanged. Mutating tools return a modified copy with ``last_updated``
    stamped and the completeness score recomputed.
    """
    tool_input = _as_dict(tool_input)

    if name in ("update_contour", "park_item"):
        stamp = now or utcnow()
        updated = contour_map.model_copy(deep=True)
        if name == "update_contour":
            _update_contour(tool_input, updated)
        else:
            _park_item(tool_input, updated, section, stamp)
        updated.metadata.last_updated = stamp
        updated.metadata.completeness_score = completeness_score(updated)
        return StoreResult(contour_map=updated)

    if name == "show_comparison":
        return StoreResult(contour_map=contour_map, display=_display("comparison", tool_input))
    if name == "show_hierarchy":
        return StoreResult(contour_map=contour_map, display=_display("hierarchy", tool_input))
    if name == "show_table":
        return StoreResult(contour_map=contour_map, display=_display("table", tool_input))
    if name == "advance_section":
        action = StateAction(type=StateActionType.ADVANCE, summary=_opt_str(tool_input, "summary"))
        return StoreResult(contour_map=contour_map, state_action=action)

    logger.debug("Tool %r has no contour store effect", name)
    return StoreResult(contour_map=contour_map)


def add_artifact(
    contour_map: ContourMap, artifact: UploadedArtifact, *, now: datetime | None = None
) -> ContourMap:
    updated = contour_map.model_copy(deep=True)
    updated.uploaded_artifacts.append(artifact)
    updated.metadata.last_updated = now or utcnow()
    updated.metadata.completeness_score = completeness_score(updated)
    return updated


def approve_contour(contour_map: ContourMap, *, now: datetime | None = None) -> ContourMap:
    updated = contour_map.model_copy(deep=True)
    updated.metadata.version = APPROVED_VERSION
    updated.metadata.last_updated = now or utcnow()
    return updated


def _fraction(count: int, target: int) -> float:
    return min(count, target) / target


def completeness_score(contour_map: ContourMap) -> int:
    """Weighted 0-100 heuristic of how much of the map has been captured.

    Always computed from scratch so equal maps score equally.
    """
    score = 0.0
    score += WEIGHTS["hierarchy"] * _fraction(count_nodes(contour_map.organizational_hierarchy), 5)
    score += WEIGHTS["sor"] * _fraction(len(contour_map.sor_authority_map), 3)

    conflicts = contour_map.conflict_register
    if not conflicts:
        score += WEIGHTS["conflicts_resolved"]
    else:
        resolved = sum(1 for c in conflicts if c.status is ConflictStatus.RESOLVED)
        score += WEIGHTS["conflicts_resolved"] * resolved / len(conflicts)

    if contour_map.management_overlay:
        score += WEIGHTS["management"]
    score += WEIGHTS["vocabulary"] * _fraction(len(contour_map.vocabulary_map), 3)
    score += WEIGHTS["queries"] * _fraction(len(contour_map.priority_queries), 3)
    if contour_map.follow_up_tasks:
        score += WEIGHTS["follow_ups"]

    # Round half up.
    return int(score + 0.5)
