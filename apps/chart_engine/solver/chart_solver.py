"""图表级约束装配：把规范树与状态树翻译为线性约束并写回求解结果。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from apps.chart_engine.contracts.specification import (
    Chart,
    Constraint,
    Glyph,
    Mappings,
    PlotSegment,
    Scale,
    ScaleMapping,
    SnapMapping,
    TextMapping,
    ValueMapping,
)
from apps.chart_engine.contracts.state import ChartState
from apps.chart_engine.expression import parse, parse_text_expression
from apps.chart_engine.expression.values import is_number
from apps.chart_engine.prototypes import ConstraintContext, ElementClass, GlyphInstance, get_class
from apps.chart_engine.scales.mapping import has_range_variables, linear_fraction, map_value
from apps.chart_engine.solver.builder import AttributeMap, ConstraintBuilder
from apps.chart_engine.solver.kernel import ConstraintStrength, SolveResult
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)

CHART_OWNER = "chart"


@dataclass(frozen=True)
class PresolveHint:
    """下一次求解时使用的提示，按规范节点标识定位。"""

    strength: ConstraintStrength
    object_id: str
    attribute: str
    value: Any


@dataclass
class _Node:
    attributes: AttributeMap
    cls: Type[ElementClass]


def glyph_owner(plot_segment_id: str, index: int) -> str:
    return f"{plot_segment_id}#{index}"


def mark_owner(plot_segment_id: str, index: int, mark_id: str) -> str:
    return f"{plot_segment_id}#{index}/{mark_id}"


def scale_owner(scale_id: str) -> str:
    return f"scale:{scale_id}"


class ChartConstraintSolver:
    """一次求解过程的装配器，求解结束后即可丢弃。"""

    def __init__(self, chart: Chart, state: ChartState, store: DatasetStore, *, tolerance: float = 1e-7) -> None:
        self.chart = chart
        self.tolerance = tolerance
        self.state = state
        self.store = store
        self.builder = ConstraintBuilder()
        self._nodes: Dict[str, _Node] = {}
        self._owners: Dict[str, List[str]] = {}
        self._scales: Dict[str, Scale] = {scale.id: scale for scale in chart.scales}
        self._glyphs: Dict[str, Glyph] = {glyph.id: glyph for glyph in chart.glyphs}
        self.mapping_only = False

    def _register(self, object_id: str, owner: str, attributes: AttributeMap, cls: Type[ElementClass]) -> None:
        self._nodes[owner] = _Node(attributes=attributes, cls=cls)
        self._owners.setdefault(object_id, []).append(owner)

    def _evaluate(self, table: str, rows: Optional[Sequence[int]], expression: str) -> Any:
        if rows is None:
            rows = range(len(self.store.get_table(table).rows))
        return parse(expression).evaluate(self.store.group_context(table, rows))

    def solve(self, hints: Sequence[PresolveHint] = (), *, mapping_only: bool = False) -> SolveResult:
        """装配并求解。

        Parameters
        ----------
        hints: Sequence[PresolveHint]
            预求解提示。
        mapping_only: bool
            为 True 时只把映射结果直接写入属性，不做约束求解。

        Returns
        -------
        SolveResult
            求解结果，失败子图的变量保持原值。
        """

        self.mapping_only = mapping_only
        self._collect_nodes()
        self._apply_all_mappings()
        self._apply_snap_constraints(self.chart.constraints, None)
        for plot_segment in self._plot_segments():
            glyph = self._glyphs.get(plot_segment.glyph)
            state = self.state.plot_segment_state(plot_segment.id)
            if glyph is None or state is None:
                continue
            for index in range(len(state.glyphs)):
                self._apply_snap_constraints(glyph.constraints, (plot_segment, glyph, index))
        self._apply_hints(hints)
        # 映射与提示先写入不参与求解的属性，类内在约束再把它们读作常量
        self._apply_class_constraints()
        if mapping_only:
            return SolveResult(values={})
        result = self.builder.solve(self.tolerance)
        LOGGER.debug(
            "Chart constraints solved",
            extra={
                "variable_count": len(self.builder.variables),
                "constraint_count": len(self.builder.constraints),
                "subgraph_count": result.subgraph_count,
                "failed_subgraphs": len(result.failures),
            },
        )
        return result

    def _plot_segments(self) -> List[PlotSegment]:
        return [element for element in self.chart.elements if isinstance(element, PlotSegment)]

    def _collect_nodes(self) -> None:
        self._register(self.chart.id, CHART_OWNER, self.state.attributes, get_class(self.chart.class_id))
        for scale in self.chart.scales:
            scale_state = self.state.scales.get(scale.id)
            if scale_state is not None:
                self._owners.setdefault(scale.id, []).append(scale_owner(scale.id))
        for element in self.chart.elements:
            element_state = self.state.elements.get(element.id)
            if element_state is None:
                continue
            self._register(element.id, element.id, element_state.attributes, get_class(element.class_id))
            if not isinstance(element, PlotSegment):
                continue
            glyph = self._glyphs.get(element.glyph)
            plot_state = self.state.plot_segment_state(element.id)
            if glyph is None or plot_state is None:
                continue
            glyph_cls = get_class(glyph.class_id)
            for index, glyph_state in enumerate(plot_state.glyphs):
                self._register(glyph.id, glyph_owner(element.id, index), glyph_state.attributes, glyph_cls)
                for mark in glyph.marks:
                    mark_state = glyph_state.marks.get(mark.id)
                    if mark_state is not None:
                        owner = mark_owner(element.id, index, mark.id)
                        self._register(mark.id, owner, mark_state.attributes, get_class(mark.class_id))

    def _apply_class_constraints(self) -> None:
        chart_cls = get_class(self.chart.class_id)
        chart_cls.build_constraints(
            ConstraintContext(
                builder=self.builder,
                owner=CHART_OWNER,
                properties=self.chart.properties,
                attributes=self.state.attributes,
            ),
        )
        for element in self.chart.elements:
            element_state = self.state.elements.get(element.id)
            if element_state is None:
                continue
            cls = get_class(element.class_id)
            context = ConstraintContext(
                builder=self.builder,
                owner=element.id,
                properties=element.properties,
                attributes=element_state.attributes,
            )
            plot_state = self.state.plot_segment_state(element.id)
            if isinstance(element, PlotSegment) and element.glyph in self._glyphs and plot_state is not None:
                glyph = self._glyphs[element.glyph]
                glyph_cls = get_class(glyph.class_id)
                context.glyphs = [
                    GlyphInstance(owner=glyph_owner(element.id, index), state=glyph_state)
                    for index, glyph_state in enumerate(plot_state.glyphs)
                ]
                context.glyph_class = glyph_cls
                table = element.table
                context.evaluate = lambda rows, expression, table=table: self._evaluate(table, rows, expression)
                for instance in context.glyphs:
                    self._build_glyph_constraints(glyph, glyph_cls, element, instance)
            if self.mapping_only:
                continue
            cls.build_constraints(context)
        if not self.mapping_only:
            for scale in self.chart.scales:
                scale_state = self.state.scales.get(scale.id)
                if scale_state is not None and has_range_variables(scale):
                    self.builder.attr(scale_owner(scale.id), scale_state.attributes, "range_min")
                    self.builder.attr(scale_owner(scale.id), scale_state.attributes, "range_max")

    def _build_glyph_constraints(
        self,
        glyph: Glyph,
        glyph_cls: Type[ElementClass],
        plot_segment: PlotSegment,
        instance: GlyphInstance,
    ) -> None:
        if self.mapping_only:
            return
        glyph_cls.build_constraints(
            ConstraintContext(
                builder=self.builder,
                owner=instance.owner,
                properties=glyph.properties,
                attributes=instance.state.attributes,
            ),
        )
        for mark in glyph.marks:
            mark_state = instance.state.marks.get(mark.id)
            if mark_state is None:
                continue
            get_class(mark.class_id).build_constraints(
                ConstraintContext(
                    builder=self.builder,
                    owner=f"{instance.owner}/{mark.id}",
                    properties=mark.properties,
                    attributes=mark_state.attributes,
                ),
            )

    def _apply_all_mappings(self) -> None:
        self._apply_mappings(CHART_OWNER, self.chart.mappings, None, None)
        for scale in self.chart.scales:
            scale_state = self.state.scales.get(scale.id)
            if scale_state is None:
                continue
            for attribute, mapping in scale.mappings.items():
                if isinstance(mapping, ValueMapping):
                    self._assign_scale_attribute(scale, scale_state.attributes, attribute, mapping.value)
        for element in self.chart.elements:
            if element.id not in self._nodes:
                continue
            self._apply_mappings(element.id, element.mappings, None, None)
            plot_state = self.state.plot_segment_state(element.id)
            if not isinstance(element, PlotSegment) or element.glyph not in self._glyphs or plot_state is None:
                continue
            glyph = self._glyphs[element.glyph]
            for index, glyph_state in enumerate(plot_state.glyphs):
                scope = (element, glyph, index)
                rows = glyph_state.row_indices
                self._apply_mappings(glyph_owner(element.id, index), glyph.mappings, rows, scope, element.table)
                for mark in glyph.marks:
                    owner = mark_owner(element.id, index, mark.id)
                    if owner in self._nodes:
                        self._apply_mappings(owner, mark.mappings, rows, scope, element.table)

    def _assign_scale_attribute(self, scale: Scale, attributes: AttributeMap, attribute: str, value: Any) -> None:
        if has_range_variables(scale) and attribute in {"range_min", "range_max"} and is_number(value):
            if not self.mapping_only:
                key = self.builder.attr(scale_owner(scale.id), attributes, attribute)
                self.builder.fix(ConstraintStrength.HARD, key, value)
                return
        attributes[attribute] = value

    def _assign(self, owner: str, attribute: str, value: Any) -> None:
        """写入映射结果：可求解的数值属性转为 HARD 约束，其余直接写入。"""

        node = self._nodes[owner]
        if not self.mapping_only and node.cls.is_solvable(attribute) and is_number(value):
            key = self.builder.attr(owner, node.attributes, attribute)
            self.builder.fix(ConstraintStrength.HARD, key, value)
            return
        node.attributes[attribute] = value

    def _apply_mappings(
        self,
        owner: str,
        mappings: Mappings,
        rows: Optional[Sequence[int]],
        scope: Optional[Tuple[PlotSegment, Glyph, int]],
        table: Optional[str] = None,
    ) -> None:
        node = self._nodes[owner]
        for attribute, mapping in mappings.items():
            if isinstance(mapping, ValueMapping):
                self._assign(owner, attribute, mapping.value)
            elif isinstance(mapping, ScaleMapping):
                self._apply_scale_mapping(owner, node, attribute, mapping, rows)
            elif isinstance(mapping, TextMapping):
                context_rows = rows if mapping.table == table else None
                if context_rows is None:
                    context_rows = range(len(self.store.get_table(mapping.table).rows))
                template = parse_text_expression(mapping.text_expression)
                node.attributes[attribute] = template.evaluate(self.store.group_context(mapping.table, context_rows))
            elif isinstance(mapping, SnapMapping):
                target = self._resolve_owner(mapping.element, scope)
                if target is None:
                    LOGGER.warning(
                        "Snap mapping target missing",
                        extra={"owner": owner, "attribute": attribute, "target": mapping.element},
                    )
                    continue
                self._snap(owner, attribute, target, mapping.attribute, 0.0, ConstraintStrength.HARD)

    def _apply_scale_mapping(
        self,
        owner: str,
        node: _Node,
        attribute: str,
        mapping: ScaleMapping,
        rows: Optional[Sequence[int]],
    ) -> None:
        value = self._evaluate(mapping.table, rows, mapping.expression)
        if mapping.scale is None:
            self._assign(owner, attribute, value)
            return
        scale = self._scales.get(mapping.scale)
        if scale is None:
            LOGGER.warning(
                "Mapped scale missing",
                extra={"owner": owner, "attribute": attribute, "scale_id": mapping.scale},
            )
            return
        scale_state = self.state.scales.get(scale.id)
        if (
            not self.mapping_only
            and has_range_variables(scale)
            and node.cls.is_solvable(attribute)
            and scale_state is not None
        ):
            fraction = linear_fraction(scale, value)
            if fraction is None:
                return
            key = self.builder.attr(owner, node.attributes, attribute)
            range_min = self.builder.attr(scale_owner(scale.id), scale_state.attributes, "range_min")
            range_max = self.builder.attr(scale_owner(scale.id), scale_state.attributes, "range_max")
            self.builder.linear(
                ConstraintStrength.HARD,
                lhs=[(1.0, key)],
                rhs=[(1.0 - fraction, range_min), (fraction, range_max)],
            )
            return
        self._assign(owner, attribute, map_value(scale, scale_state, value))

    def _resolve_owner(self, object_id: str, scope: Optional[Tuple[PlotSegment, Glyph, int]]) -> Optional[str]:
        """在给定 glyph 实例范围内解析对象标识，范围外回落到图表级对象。"""

        if scope is not None:
            plot_segment, glyph, index = scope
            if object_id == glyph.id:
                return glyph_owner(plot_segment.id, index)
            if any(mark.id == object_id for mark in glyph.marks):
                owner = mark_owner(plot_segment.id, index, object_id)
                return owner if owner in self._nodes else None
        if object_id == self.chart.id:
            return CHART_OWNER
        if object_id in self._nodes:
            return object_id
        return None

    def _snap(
        self,
        owner: str,
        attribute: str,
        target: str,
        target_attribute: str,
        gap: float,
        strength: ConstraintStrength,
    ) -> None:
        node, target_node = self._nodes[owner], self._nodes[target]
        if not (node.cls.is_solvable(attribute) and target_node.cls.is_solvable(target_attribute)):
            LOGGER.warning(
                "Snap on non-solvable attribute ignored",
                extra={"owner": owner, "attribute": attribute, "target": target, "target_attribute": target_attribute},
            )
            return
        if self.mapping_only:
            return
        self.builder.equal(
            strength,
            self.builder.attr(owner, node.attributes, attribute),
            self.builder.attr(target, target_node.attributes, target_attribute),
            gap,
        )

    def _apply_snap_constraints(
        self,
        constraints: Sequence[Constraint],
        scope: Optional[Tuple[PlotSegment, Glyph, int]],
    ) -> None:
        for constraint in constraints:
            attributes = constraint.attributes
            owner = self._resolve_owner(attributes.element, scope)
            target = self._resolve_owner(attributes.target_element, scope)
            if owner is None or target is None:
                LOGGER.warning(
                    "Snap constraint reference missing",
                    extra={"element": attributes.element, "target_element": attributes.target_element},
                )
                continue
            self._snap(
                owner,
                attributes.attribute,
                target,
                attributes.target_attribute,
                attributes.gap,
                ConstraintStrength.from_name(constraint.strength),
            )

    def _apply_hints(self, hints: Sequence[PresolveHint]) -> None:
        for hint in hints:
            owners = self._owners.get(hint.object_id, [])
            if not owners:
                LOGGER.warning(
                    "Presolve hint target missing",
                    extra={"object_id": hint.object_id, "attribute": hint.attribute},
                )
                continue
            for owner in owners:
                if owner.startswith("scale:"):
                    scale = self._scales[hint.object_id]
                    scale_state = self.state.scales[hint.object_id]
                    if not self.mapping_only and has_range_variables(scale) and hint.attribute in {"range_min", "range_max"}:
                        key = self.builder.attr(owner, scale_state.attributes, hint.attribute)
                        self.builder.hint(hint.strength, key, hint.value)
                    else:
                        scale_state.attributes[hint.attribute] = hint.value
                    continue
                node = self._nodes[owner]
                if not self.mapping_only and node.cls.is_solvable(hint.attribute) and is_number(hint.value):
                    key = self.builder.attr(owner, node.attributes, hint.attribute)
                    self.builder.hint(hint.strength, key, hint.value)
                else:
                    node.attributes[hint.attribute] = hint.value
