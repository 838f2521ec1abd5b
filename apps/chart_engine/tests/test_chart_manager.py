"""ChartManager 的索引、状态同步与结构变更测试。"""

from __future__ import annotations

import pytest

from apps.chart_engine.contracts.specification import Chart, ChartElement, PlotSegment, ValueMapping
from apps.chart_engine.contracts.state import PlotSegmentState
from apps.chart_engine.errors import ChartReferenceError
from apps.chart_engine.services import ChartManager
from apps.chart_engine.services.chart_manager import reorder


@pytest.fixture()
def manager(dataset_store) -> ChartManager:
    """带 glyph、标记与绘图区的管理器。"""

    manager = ChartManager(Chart(), dataset_store)
    glyph = manager.add_glyph("sales")
    manager.add_mark_to_glyph(manager.create_object("mark.rect"), glyph)
    manager.add_chart_element(manager.create_object("plot-segment.cartesian", glyph=glyph))
    return manager


def _plot_segment(manager: ChartManager) -> PlotSegment:
    return next(element for element in manager.chart.elements if isinstance(element, PlotSegment))


@pytest.mark.parametrize(
    ("from_index", "to_index", "expected"),
    [
        (0, 2, ["b", "a", "c"]),
        (0, 3, ["b", "c", "a"]),
        (2, 0, ["c", "a", "b"]),
        (1, 1, ["a", "b", "c"]),
    ],
)
def test_reorder_moves_item_before_target(from_index: int, to_index: int, expected: list) -> None:
    """条目移动到 to_index 处原条目之前。"""

    items = ["a", "b", "c"]
    reorder(items, from_index, to_index)
    assert items == expected


def test_reorder_rejects_out_of_range() -> None:
    with pytest.raises(IndexError):
        reorder(["a"], 1, 0)


def test_initialize_cache_builds_states(manager: ChartManager) -> None:
    """每个数据行一个 glyph 实例，实例内带有标记状态。"""

    plot_segment = _plot_segment(manager)
    state = manager.state.elements[plot_segment.id]
    assert isinstance(state, PlotSegmentState)
    assert [glyph.group_key for glyph in state.glyphs] == ["0", "1", "2", "3"]
    mark = manager.chart.glyphs[0].marks[0]
    assert all(mark.id in glyph.marks for glyph in state.glyphs)
    assert manager.state.attributes["width"] == 900.0


def test_unique_names_per_class(manager: ChartManager) -> None:
    """名称使用类展示名加最小未占用序号。"""

    assert manager.chart.glyphs[0].properties["name"] == "Glyph1"
    assert _plot_segment(manager).properties["name"] == "PlotSegment1"
    assert manager.find_unused_name("Glyph") == "Glyph2"


def test_get_object_states_for_marks(manager: ChartManager) -> None:
    """标记在每个 glyph 实例中各有一份状态。"""

    mark = manager.chart.glyphs[0].marks[0]
    assert len(manager.get_object_states(mark.id)) == 4
    assert manager.get_object_states(manager.chart.id) == [manager.state.attributes]
    with pytest.raises(ChartReferenceError):
        manager.get_object_states("missing")


def test_remap_reuses_glyph_states_by_group_key(manager: ChartManager) -> None:
    """重新分组时分组键相同的实例沿用原状态对象。"""

    from apps.chart_engine.contracts.specification import Filter

    plot_segment = _plot_segment(manager)
    before = {glyph.group_key: glyph for glyph in manager.state.plot_segment_state(plot_segment.id).glyphs}
    plot_segment.filter = Filter(expression="value != -1")
    manager.remap_plot_segment_glyphs(plot_segment)
    after = manager.state.plot_segment_state(plot_segment.id).glyphs
    assert [glyph.group_key for glyph in after] == ["0", "2", "3"]
    assert all(glyph is before[glyph.group_key] for glyph in after)


def test_remove_chart_element_prunes_references(manager: ChartManager) -> None:
    """删除元素时清理引用它的吸附约束与吸附映射。"""

    from apps.chart_engine.contracts.specification import Constraint, SnapAttributes, SnapMapping

    first = manager.create_object("legend.categorical")
    second = manager.create_object("legend.categorical")
    manager.add_chart_element(first)
    manager.add_chart_element(second)
    manager.chart.constraints.append(
        Constraint(attributes=SnapAttributes(element=first.id, attribute="x", target_element=second.id, target_attribute="x")),
    )
    first.mappings["y"] = SnapMapping(element=second.id, attribute="y")
    manager.remove_chart_element(second)
    assert manager.chart.constraints == []
    assert "y" not in first.mappings
    assert second.id not in manager.state.elements


def test_switch_class_migrates_mappings_and_resets_state(manager: ChartManager) -> None:
    """绘图区切换为极坐标时保留边界映射与共享属性，状态重新初始化。"""

    plot_segment = _plot_segment(manager)
    plot_segment.mappings["x1"] = ValueMapping(value=-250.0)
    plot_segment.properties["cartesianOnly"] = True
    manager.state.elements[plot_segment.id].attributes["stale"] = 1.0
    manager.switch_class(plot_segment, "plot-segment.polar")
    assert plot_segment.class_id == "plot-segment.polar"
    assert plot_segment.mappings == {"x1": ValueMapping(value=-250.0)}
    assert "cartesianOnly" not in plot_segment.properties
    assert plot_segment.properties["sublayout"]["type"] == "dodge-x"
    assert plot_segment.properties["startAngle"] == 0.0
    attributes = manager.state.elements[plot_segment.id].attributes
    assert "stale" not in attributes
    assert "innerX1" not in attributes
    assert attributes["radial2"] == 300.0


def test_switch_class_for_non_plot_segment_keeps_known_mappings(manager: ChartManager) -> None:
    """非绘图区元素只保留新类仍声明的映射。"""

    legend = manager.create_object("legend.numerical")
    legend.mappings["length"] = ValueMapping(value=120.0)
    legend.mappings["x"] = ValueMapping(value=1.0)
    manager.add_chart_element(legend)
    manager.switch_class(legend, "legend.categorical")
    assert set(legend.mappings) == {"x"}


def test_solve_report_counts_subgraphs(manager: ChartManager) -> None:
    """求解报告给出子图数量，没有失败时状态为 success。"""

    report = manager.solve_constraints_and_update_graphics()
    assert report.subgraph_count > 0
    assert report.status == "success"
    assert report.failure_isolation_ratio == 1.0


def test_create_plot_segment_requires_glyph(manager: ChartManager) -> None:
    with pytest.raises(ChartReferenceError):
        manager.create_object("plot-segment.cartesian")
    assert isinstance(manager.create_object("links.through"), ChartElement)
