"""编辑会话：串联动作处理、求解、历史钩子、通知与周期记录。"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from apps.chart_engine.contracts.cycle import CycleRecord
from apps.chart_engine.contracts.specification import Chart, Scale, SnapMapping
from apps.chart_engine.contracts.state import ChartState, GlyphState
from apps.chart_engine.infra.clock import UtcClock
from apps.chart_engine.infra.tracing import CycleRecorder
from apps.chart_engine.prototypes import is_type
from apps.chart_engine.scales.mapping import is_categorical
from apps.chart_engine.services.action_handlers import ActionHandlerRegistry, default_registry
from apps.chart_engine.services.chart_manager import ChartManager, SolveReport
from apps.chart_engine.services.notifications import EVENT_GRAPHICS, EVENT_STRUCTURE, EventHub
from apps.chart_engine.services.solve_worker import SolveRequest, SolveResponse
from apps.chart_engine.solver.chart_solver import PresolveHint
from apps.chart_engine.solver.kernel import ConstraintStrength
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)

HistoryHook = Callable[[Chart, ChartState], None]


def _merge_attributes(target: dict, source: dict) -> None:
    for name, value in source.items():
        target[name] = value


def _merge_state(target: ChartState, source: ChartState) -> None:
    """把求解结果逐个属性写回当前状态树，只覆盖两边都存在的节点。"""

    _merge_attributes(target.attributes, source.attributes)
    for element_id, element_state in target.elements.items():
        solved = source.elements.get(element_id)
        if solved is None:
            continue
        _merge_attributes(element_state.attributes, solved.attributes)
        glyphs: List[GlyphState] = getattr(element_state, "glyphs", [])
        solved_glyphs = {glyph.group_key: glyph for glyph in getattr(solved, "glyphs", [])}
        for glyph_state in glyphs:
            solved_glyph = solved_glyphs.get(glyph_state.group_key)
            if solved_glyph is None:
                continue
            _merge_attributes(glyph_state.attributes, solved_glyph.attributes)
            for mark_id, mark_state in glyph_state.marks.items():
                if mark_id in solved_glyph.marks:
                    _merge_attributes(mark_state.attributes, solved_glyph.marks[mark_id].attributes)
    for scale_id, scale_state in target.scales.items():
        if scale_id in source.scales:
            _merge_attributes(scale_state.attributes, source.scales[scale_id].attributes)


class ChartStore:
    """一个图表编辑会话。

    每次 :meth:`dispatch` 构成一个周期：执行动作处理器、求解、在周期
    结束时按顺序派发通知并生成 :class:`CycleRecord`。处理器抛出异常时
    规范与状态恢复到动作之前，异常继续向调用方抛出。
    """

    def __init__(
        self,
        manager: ChartManager,
        *,
        clock: Optional[UtcClock] = None,
        recorder: Optional[CycleRecorder] = None,
        history_hook: Optional[HistoryHook] = None,
        registry: Optional[ActionHandlerRegistry] = None,
    ) -> None:
        self.manager = manager
        self.selection: Optional[str] = None
        self.current_glyph: Optional[str] = None
        self.presolve_hints: List[PresolveHint] = []
        self.history_hook = history_hook
        self.events = EventHub()
        self.recorder = recorder if recorder is not None else CycleRecorder(clock or UtcClock())
        self.registry = registry if registry is not None else default_registry()
        self.generation = 0
        self.last_report: Optional[SolveReport] = None
        self._cycle_id: Optional[str] = None

    @property
    def chart(self) -> Chart:
        return self.manager.chart

    @property
    def chart_state(self) -> ChartState:
        return self.manager.state

    @property
    def dataset_store(self) -> DatasetStore:
        return self.manager.store

    def save_history(self) -> None:
        """在变更前把规范与状态的深拷贝交给历史钩子。"""

        if self.history_hook is not None:
            self.history_hook(self.chart.model_copy(deep=True), self.chart_state.model_copy(deep=True))

    def emit(self, event: str) -> None:
        self.events.emit(event)

    def add_presolve_value(self, strength: ConstraintStrength, object_id: str, attribute: str, value: Any) -> None:
        self.presolve_hints.append(
            PresolveHint(strength=strength, object_id=object_id, attribute=attribute, value=value),
        )

    def solve_constraints_and_update_graphics(self, mapping_only: bool = False) -> SolveReport:
        """消费预求解提示并求解，随后登记 graphics 通知。"""

        hints, self.presolve_hints = self.presolve_hints, []
        report = self.manager.solve_constraints_and_update_graphics(hints, mapping_only=mapping_only)
        self.last_report = report
        if self._cycle_id is not None:
            self.recorder.record_solve(
                self._cycle_id,
                subgraph_count=report.subgraph_count,
                failed_subgraphs=report.failed_subgraphs,
            )
        self.emit(EVENT_GRAPHICS)
        return report

    def dispatch(self, action: Any) -> CycleRecord:
        """执行一个动作周期。

        Parameters
        ----------
        action: Any
            ``contracts.actions`` 中的任一动作模型。

        Returns
        -------
        CycleRecord
            本周期的执行记录。

        Raises
        ------
        Exception
            处理器抛出的异常，抛出前规范与状态已恢复。
        """

        name = getattr(action, "action", action.__class__.__name__)
        self.generation += 1
        self._cycle_id = self.recorder.start_cycle(name)
        chart_backup = self.chart.model_copy(deep=True)
        state_backup = self.chart_state.model_copy(deep=True)
        selection_backup = self.selection
        self.last_report = None
        try:
            applied = self.registry.handle(self, action)
        except Exception as error:  # noqa: BLE001 - 回滚后继续抛出
            self.manager.chart = chart_backup
            self.manager.state = state_backup
            self.manager.initialize_cache()
            self.selection = selection_backup
            self.presolve_hints = []
            self.events.discard()
            self.recorder.finish_cycle(
                self._cycle_id,
                "failed",
                error_class=error.__class__.__name__,
                detail=str(error),
            )
            self._cycle_id = None
            LOGGER.warning(
                "Action rolled back",
                extra={"action": name, "error_type": error.__class__.__name__},
            )
            raise
        events = self.events.flush()
        if applied is False:
            status = "noop"
        elif self.last_report is not None and self.last_report.failures:
            status = "partial"
        else:
            status = "success"
        record = self.recorder.finish_cycle(self._cycle_id, status, events=events)
        self._cycle_id = None
        return record

    def toggle_legend_for_scale(self, scale_id: str) -> bool:
        """Scale 已有图例时删除，否则在图表右上角添加图例。

        Returns
        -------
        bool
            Scale 存在时返回 True。
        """

        scale = self.manager.find_object(scale_id)
        if not isinstance(scale, Scale):
            LOGGER.warning("Legend scale missing", extra={"scale_id": scale_id})
            return False
        legends = [
            element
            for element in self.chart.elements
            if is_type(element.class_id, "legend") and element.properties.get("scale") == scale_id
        ]
        if legends:
            for legend in legends:
                self.manager.remove_chart_element(legend)
                if self.selection == legend.id:
                    self.selection = None
            self.emit(EVENT_STRUCTURE)
            return True
        class_id = "legend.categorical" if is_categorical(scale) else "legend.numerical"
        legend = self.manager.create_object(class_id)
        legend.properties["scale"] = scale_id
        legend.mappings["x"] = SnapMapping(element=self.chart.id, attribute="x2")
        legend.mappings["y"] = SnapMapping(element=self.chart.id, attribute="y2")
        self.manager.add_chart_element(legend)
        self.emit(EVENT_STRUCTURE)
        return True

    # ------------------------------------------------------------------
    # 后台求解
    # ------------------------------------------------------------------
    def create_solve_request(self, *, mapping_only: bool = False) -> SolveRequest:
        """生成后台求解请求，消费当前预求解提示。"""

        hints, self.presolve_hints = self.presolve_hints, []
        return SolveRequest(
            generation=self.generation,
            chart=self.chart.model_copy(deep=True),
            state=self.chart_state.model_copy(deep=True),
            dataset=self.dataset_store.require().model_copy(deep=True),
            hints=tuple(hints),
            mapping_only=mapping_only,
        )

    def apply_worker_result(self, response: SolveResponse) -> bool:
        """写回后台求解结果，代号过期的结果被丢弃。

        Returns
        -------
        bool
            结果被采纳时返回 True。
        """

        if response.generation != self.generation:
            LOGGER.info(
                "Stale solve result discarded",
                extra={"generation": response.generation, "current_generation": self.generation},
            )
            return False
        _merge_state(self.chart_state, response.state)
        self.last_report = response.report
        self.emit(EVENT_GRAPHICS)
        self.events.flush()
        return True
