"""图表规范与状态树的唯一修改入口。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from apps.chart_engine.contracts.actions import ScaleHints
from apps.chart_engine.contracts.dataset import DataKind
from apps.chart_engine.contracts.specification import (
    Chart,
    ChartElement,
    Glyph,
    GroupBy,
    Mappings,
    PlotSegment,
    Scale,
    SnapMapping,
)
from apps.chart_engine.contracts.state import (
    AttributeMap,
    ChartState,
    ElementState,
    GlyphState,
    PlotSegmentState,
    ScaleState,
)
from apps.chart_engine.errors import ChartReferenceError, ConstraintError
from apps.chart_engine.prototypes import get_class, is_type
from apps.chart_engine.prototypes.plot_segments import MIGRATED_MAPPINGS, SHARED_PROPERTIES
from apps.chart_engine.scales.inference import ScaleInferenceEngine
from apps.chart_engine.scales.mapping import initial_scale_attributes
from apps.chart_engine.solver.chart_solver import ChartConstraintSolver, PresolveHint
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)

SpecNode = Union[Chart, ChartElement, Glyph, Scale]


@dataclass(frozen=True)
class SolveReport:
    """一次求解的汇总结果。

    Attributes
    ----------
    subgraph_count: int
        参与求解的约束子图数量。
    failures: Tuple[ConstraintError, ...]
        无解子图对应的错误，这些子图中的属性保持原值。
    """

    subgraph_count: int = 0
    failures: Tuple[ConstraintError, ...] = field(default_factory=tuple)

    @property
    def failed_subgraphs(self) -> int:
        return len(self.failures)

    @property
    def failure_isolation_ratio(self) -> float:
        """成功求解的子图占比，没有子图时为 1。"""

        if self.subgraph_count == 0:
            return 1.0
        return (self.subgraph_count - self.failed_subgraphs) / self.subgraph_count

    @property
    def status(self) -> str:
        return "partial" if self.failures else "success"


def reorder(items: List[Any], from_index: int, to_index: int) -> None:
    """把 ``from_index`` 处的条目移到 ``to_index`` 处条目之前。

    ``to_index`` 可以等于列表长度，表示移到末尾。

    Raises
    ------
    IndexError
        任一索引越界。
    """

    if not 0 <= from_index < len(items) or not 0 <= to_index <= len(items):
        raise IndexError(f"索引越界: from={from_index}, to={to_index}, length={len(items)}。")
    item = items.pop(from_index)
    if from_index < to_index:
        items.insert(to_index - 1, item)
    else:
        items.insert(to_index, item)


def _prune_snap_mappings(mappings: Mappings, object_id: str) -> None:
    for attribute in [
        name for name, mapping in mappings.items() if isinstance(mapping, SnapMapping) and mapping.element == object_id
    ]:
        del mappings[attribute]


class ChartManager:
    """持有图表规范、状态树与数据集，负责结构变更后的状态同步。

    状态树与规范树按标识对应：每次结构变更后调用 :meth:`initialize_cache`
    补齐新节点的状态、删除失效节点的状态，已有状态对象保持不变。
    """

    def __init__(
        self,
        chart: Chart,
        store: DatasetStore,
        state: Optional[ChartState] = None,
        *,
        tolerance: float = 1e-7,
    ) -> None:
        self.chart = chart
        self.store = store
        self.tolerance = tolerance
        self.state = state if state is not None else ChartState()
        self.scale_engine = ScaleInferenceEngine(store)
        self._index: Dict[str, SpecNode] = {}
        self._mark_glyphs: Dict[str, Glyph] = {}
        self.initialize_cache()

    # ------------------------------------------------------------------
    # 索引与状态同步
    # ------------------------------------------------------------------
    def initialize_cache(self) -> None:
        """重建标识索引并同步状态树。"""

        self._index = {self.chart.id: self.chart}
        self._mark_glyphs = {}
        for element in self.chart.elements:
            self._index[element.id] = element
        for glyph in self.chart.glyphs:
            self._index[glyph.id] = glyph
            for mark in glyph.marks:
                self._index[mark.id] = mark
                self._mark_glyphs[mark.id] = glyph
        for scale in self.chart.scales:
            self._index[scale.id] = scale

        get_class(self.chart.class_id).initialize_state(self.state.attributes, self.chart.properties)

        elements: Dict[str, Union[PlotSegmentState, ElementState]] = {}
        for element in self.chart.elements:
            existing = self.state.elements.get(element.id)
            if isinstance(element, PlotSegment) and not isinstance(existing, PlotSegmentState):
                attributes = existing.attributes if existing is not None else {}
                existing = PlotSegmentState(attributes=attributes, glyphs=[])
            elif existing is None:
                existing = ElementState()
            get_class(element.class_id).initialize_state(existing.attributes, element.properties)
            elements[element.id] = existing
        self.state.elements = elements
        for plot_segment, _ in self.enumerate_plot_segments():
            self.remap_plot_segment_glyphs(plot_segment)

        scales: Dict[str, ScaleState] = {}
        for scale in self.chart.scales:
            existing_scale = self.state.scales.get(scale.id)
            if existing_scale is None:
                existing_scale = ScaleState()
            for name, value in initial_scale_attributes(scale).items():
                existing_scale.attributes.setdefault(name, value)
            scales[scale.id] = existing_scale
        self.state.scales = scales
        LOGGER.debug(
            "Chart cache initialized",
            extra={
                "chart_id": self.chart.id,
                "element_count": len(self.chart.elements),
                "scale_count": len(self.chart.scales),
            },
        )

    def remap_plot_segment_glyphs(self, plot_segment: PlotSegment) -> None:
        """按当前过滤、分组与排序规则重建绘图区的 glyph 实例。

        分组键相同的实例沿用原 :class:`GlyphState` 对象，只更新行号；
        新分组创建新实例，消失的分组被丢弃。
        """

        state = self.state.plot_segment_state(plot_segment.id)
        if state is None:
            raise ChartReferenceError(f"绘图区 {plot_segment.id} 没有状态。")
        glyph = self.find_object(plot_segment.glyph)
        if not isinstance(glyph, Glyph):
            LOGGER.warning(
                "Plot segment glyph missing",
                extra={"plot_segment": plot_segment.id, "glyph": plot_segment.glyph},
            )
            state.glyphs = []
            return
        glyph_cls = get_class(glyph.class_id)
        previous = {glyph_state.group_key: glyph_state for glyph_state in state.glyphs}
        groups = self.store.get_row_groups(
            plot_segment.table,
            plot_segment.group_by,
            plot_segment.filter,
            plot_segment.order,
        )
        glyphs: List[GlyphState] = []
        for group in groups:
            glyph_state = previous.get(group.key)
            if glyph_state is None:
                glyph_state = GlyphState(group_key=group.key)
                glyph_cls.initialize_state(glyph_state.attributes, glyph.properties)
            glyph_state.row_indices = list(group.row_indices)
            self._sync_mark_states(glyph, glyph_state)
            glyphs.append(glyph_state)
        state.glyphs = glyphs
        LOGGER.debug(
            "Plot segment glyphs remapped",
            extra={
                "plot_segment": plot_segment.id,
                "glyph_count": len(glyphs),
                "reused": sum(1 for glyph_state in glyphs if previous.get(glyph_state.group_key) is glyph_state),
            },
        )

    @staticmethod
    def _sync_mark_states(glyph: Glyph, glyph_state: GlyphState) -> None:
        marks: Dict[str, ElementState] = {}
        for mark in glyph.marks:
            mark_state = glyph_state.marks.get(mark.id)
            if mark_state is None:
                mark_state = ElementState()
            get_class(mark.class_id).initialize_state(mark_state.attributes, mark.properties)
            marks[mark.id] = mark_state
        glyph_state.marks = marks

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    def find_object(self, object_id: str) -> Optional[SpecNode]:
        return self._index.get(object_id)

    def get_object(self, object_id: str) -> SpecNode:
        """按标识取规范节点。

        Raises
        ------
        ChartReferenceError
            标识不存在。
        """

        node = self._index.get(object_id)
        if node is None:
            raise ChartReferenceError(f"图表中不存在对象 {object_id}。")
        return node

    def glyph_of_mark(self, mark_id: str) -> Optional[Glyph]:
        return self._mark_glyphs.get(mark_id)

    def get_object_states(self, object_id: str) -> List[AttributeMap]:
        """返回规范节点对应的全部属性字典。

        glyph 与标记在每个绘图区的每个实例中各有一份状态，
        其余节点只有一份。
        """

        node = self.get_object(object_id)
        if node is self.chart:
            return [self.state.attributes]
        if isinstance(node, Scale):
            return [self.state.scales[object_id].attributes]
        if object_id in self.state.elements:
            return [self.state.elements[object_id].attributes]
        glyph = node if isinstance(node, Glyph) else self.glyph_of_mark(object_id)
        states: List[AttributeMap] = []
        for plot_segment, plot_state in self.enumerate_plot_segments():
            if glyph is None or plot_segment.glyph != glyph.id:
                continue
            for glyph_state in plot_state.glyphs:
                if isinstance(node, Glyph):
                    states.append(glyph_state.attributes)
                elif object_id in glyph_state.marks:
                    states.append(glyph_state.marks[object_id].attributes)
        return states

    def enumerate_plot_segments(self) -> Iterator[Tuple[PlotSegment, PlotSegmentState]]:
        for element in self.chart.elements:
            if isinstance(element, PlotSegment):
                plot_state = self.state.plot_segment_state(element.id)
                if plot_state is not None:
                    yield element, plot_state

    def find_group_by(self, object_id: str) -> Optional[GroupBy]:
        """返回取值时应使用的分组规则。

        绘图区直接使用自身的分组规则；glyph 与标记使用复制该 glyph 的
        绘图区的分组规则，多个绘图区时以最后一个为准。
        """

        node = self.find_object(object_id)
        if isinstance(node, PlotSegment):
            return node.group_by
        glyph = node if isinstance(node, Glyph) else self.glyph_of_mark(object_id)
        group_by: Optional[GroupBy] = None
        if glyph is not None:
            for plot_segment, _ in self.enumerate_plot_segments():
                if plot_segment.glyph == glyph.id:
                    group_by = plot_segment.group_by
        return group_by

    def get_grouped_expression_vector(
        self,
        table: str,
        group_by: Optional[GroupBy],
        expression: str,
    ) -> List[Any]:
        return self.store.get_grouped_values(table, group_by, expression)

    def find_unused_name(self, prefix: str) -> str:
        """返回 ``prefix`` 加最小正整数后缀的未占用名称，例如 ``Link1``。"""

        used = set()
        for node in self._index.values():
            name = node.properties.get("name")
            if name is not None:
                used.add(name)
        index = 1
        while f"{prefix}{index}" in used:
            index += 1
        return f"{prefix}{index}"

    # ------------------------------------------------------------------
    # 结构变更
    # ------------------------------------------------------------------
    def create_object(self, class_id: str, **context: Any) -> Union[ChartElement, Glyph]:
        """按类标识创建带默认属性与唯一名称的规范节点。

        Parameters
        ----------
        class_id: str
            已注册的元素类标识。
        **context: Any
            绘图区需要 ``glyph``（:class:`Glyph`）与可选的 ``table``；
            glyph 需要 ``table``。

        Raises
        ------
        ChartReferenceError
            类标识未注册，或绘图区缺少 glyph。
        """

        cls = get_class(class_id)
        properties = cls.create_properties()
        properties["name"] = self.find_unused_name(cls.display_name)
        if is_type(class_id, "plot-segment"):
            glyph = context.get("glyph")
            if not isinstance(glyph, Glyph):
                raise ChartReferenceError(f"创建 {class_id} 需要 glyph。")
            return PlotSegment(
                class_id=class_id,
                properties=properties,
                glyph=glyph.id,
                table=context.get("table") or glyph.table,
            )
        if is_type(class_id, "glyph"):
            return Glyph(class_id=class_id, table=context["table"], properties=properties)
        return ChartElement(class_id=class_id, properties=properties)

    def add_chart_element(self, element: ChartElement) -> None:
        self.chart.elements.append(element)
        self.initialize_cache()

    def remove_chart_element(self, element: ChartElement) -> None:
        """删除图表元素及其状态，同时清理引用它的吸附约束与吸附映射。"""

        self.chart.elements = [item for item in self.chart.elements if item.id != element.id]
        self._prune_references(element.id)
        self.initialize_cache()
        LOGGER.info("Chart element removed", extra={"element": element.id, "class_id": element.class_id})

    def _prune_references(self, object_id: str) -> None:
        self.chart.constraints = [item for item in self.chart.constraints if not item.references(object_id)]
        _prune_snap_mappings(self.chart.mappings, object_id)
        for element in self.chart.elements:
            _prune_snap_mappings(element.mappings, object_id)
        for glyph in self.chart.glyphs:
            glyph.constraints = [item for item in glyph.constraints if not item.references(object_id)]
            _prune_snap_mappings(glyph.mappings, object_id)
            for mark in glyph.marks:
                _prune_snap_mappings(mark.mappings, object_id)

    def add_glyph(self, table: str, class_id: str = "glyph.rectangle") -> Glyph:
        glyph = self.create_object(class_id, table=table)
        self.chart.glyphs.append(glyph)
        self.initialize_cache()
        return glyph

    def add_mark_to_glyph(self, mark: ChartElement, glyph: Glyph, index: Optional[int] = None) -> None:
        """向 glyph 追加标记，所有实例随即获得该标记的状态。"""

        if index is None:
            glyph.marks.append(mark)
        else:
            glyph.marks.insert(index, mark)
        self.initialize_cache()

    def remove_mark_from_glyph(self, mark: ChartElement, glyph: Glyph) -> None:
        glyph.marks = [item for item in glyph.marks if item.id != mark.id]
        self._prune_references(mark.id)
        self.initialize_cache()

    def reorder_chart_element(self, from_index: int, to_index: int) -> None:
        if from_index == to_index:
            return
        reorder(self.chart.elements, from_index, to_index)
        self.initialize_cache()

    def reorder_glyph_element(self, glyph: Glyph, from_index: int, to_index: int) -> None:
        if from_index == to_index:
            return
        reorder(glyph.marks, from_index, to_index)
        self.initialize_cache()

    def switch_class(self, element: ChartElement, new_class_id: str) -> None:
        """切换元素类并迁移规范与状态。

        绘图区之间切换时保留 x1/x2/y1/y2 映射与共享属性，其余属性取新类
        默认值；其他元素保留新类仍然声明的映射。状态属性清空后按新类
        重新初始化，状态对象本身不被替换。
        """

        new_cls = get_class(new_class_id)
        if element.class_id == new_class_id:
            return
        original_mappings = element.mappings
        original_properties = element.properties
        if is_type(element.class_id, "plot-segment") and is_type(new_class_id, "plot-segment"):
            mappings = {name: original_mappings[name] for name in MIGRATED_MAPPINGS if name in original_mappings}
            properties = {name: original_properties[name] for name in SHARED_PROPERTIES if name in original_properties}
        else:
            mappings = {name: mapping for name, mapping in original_mappings.items() if name in new_cls.attributes}
            properties = dict(original_properties)
        for name, value in new_cls.create_properties().items():
            properties.setdefault(name, value)
        element.class_id = new_class_id
        element.mappings = mappings
        element.properties = properties
        self.initialize_cache()
        state = self.state.elements[element.id]
        state.attributes.clear()
        new_cls.initialize_state(state.attributes, element.properties)
        LOGGER.info(
            "Element class switched",
            extra={"element": element.id, "class_id": new_class_id, "kept_mappings": sorted(mappings)},
        )

    # ------------------------------------------------------------------
    # Scale 与求解
    # ------------------------------------------------------------------
    def infer_scale(
        self,
        *,
        table: str,
        expressions: Union[str, Sequence[str]],
        data_kind: DataKind,
        attribute_type: str,
        hints: Optional[ScaleHints] = None,
        group_by: Optional[GroupBy] = None,
    ) -> Optional[str]:
        """推断或复用 Scale，并为新 Scale 创建状态。"""

        scale_id = self.scale_engine.infer(
            self.chart,
            table=table,
            expressions=expressions,
            data_kind=data_kind,
            attribute_type=attribute_type,
            hints=hints,
            group_by=group_by,
        )
        if scale_id is not None:
            self.initialize_cache()
        return scale_id

    def solve_constraints_and_update_graphics(
        self,
        hints: Sequence[PresolveHint] = (),
        *,
        mapping_only: bool = False,
    ) -> SolveReport:
        """求解约束并把结果写回状态树。

        Parameters
        ----------
        hints: Sequence[PresolveHint]
            本次求解使用的预求解提示。
        mapping_only: bool
            为 True 时只应用映射，不重新计算布局。

        Returns
        -------
        SolveReport
            子图数量与失败子图，失败不会中断其他子图的求解。
        """

        solver = ChartConstraintSolver(self.chart, self.state, self.store, tolerance=self.tolerance)
        result = solver.solve(hints, mapping_only=mapping_only)
        report = SolveReport(subgraph_count=result.subgraph_count, failures=tuple(result.failures))
        LOGGER.info(
            "Chart solved",
            extra={
                "chart_id": self.chart.id,
                "subgraph_count": report.subgraph_count,
                "failed_subgraphs": report.failed_subgraphs,
                "mapping_only": mapping_only,
            },
        )
        return report
