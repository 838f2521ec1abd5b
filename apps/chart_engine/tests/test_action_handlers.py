"""编辑动作在完整周期中的行为测试：映射、吸附、结构变更与回滚。"""

from __future__ import annotations

import pytest

from apps.chart_engine.contracts.actions import (
    AddChartElement,
    AddLinks,
    BindDataToAxis,
    DeleteChartElement,
    ExtendPlotSegment,
    MapDataToChartElementAttribute,
    ReorderChartElement,
    ScaleHints,
    SetChartElementMapping,
    SetChartSize,
    SetObjectProperty,
    SetPlotSegmentFilter,
    SetPlotSegmentGroupBy,
    SnapChartElements,
    ToggleLegendForScale,
    UpdateChartAttribute,
    UpdateChartElementAttribute,
)
from apps.chart_engine.contracts.dataset import ColumnMetadata, DataKind, DataType
from apps.chart_engine.contracts.specification import ChartElement, Filter, GroupBy, PlotSegment, ValueMapping
from apps.chart_engine.errors import EmptyDomainError
from apps.chart_engine.services import compute_chart_hash
from apps.chart_engine.services.action_handlers import set_field
from apps.chart_engine.solver.kernel import ConstraintStrength


def _plot_segment(store) -> PlotSegment:
    return next(element for element in store.chart.elements if isinstance(element, PlotSegment))


def _mark(store) -> ChartElement:
    return store.chart.glyphs[0].marks[0]


def _glyph_states(store):
    return store.chart_state.plot_segment_state(_plot_segment(store).id).glyphs


def _add_legends(store, count: int = 2):
    ids = []
    for _ in range(count):
        store.dispatch(AddChartElement(class_id="legend.categorical"))
        ids.append(store.selection)
    return ids


def _map_fill_by_category(store) -> str:
    store.dispatch(
        MapDataToChartElementAttribute(
            element=_mark(store).id,
            attribute="fill",
            attribute_type="color",
            table="sales",
            expression="category",
            value_type=DataType.STRING,
            value_kind=DataKind.CATEGORICAL,
            hints=ScaleHints(order_mode="occurrence"),
        ),
    )
    return _mark(store).mappings["fill"].scale


def test_numeric_mapping_places_heights_on_scale_range(bar_store) -> None:
    """数值映射把标记高度写成 Scale 值域变量的线性组合。"""

    mark = _mark(bar_store)
    record = bar_store.dispatch(
        MapDataToChartElementAttribute(
            element=mark.id,
            attribute="height",
            attribute_type="number",
            table="sales",
            expression="value",
            value_type=DataType.NUMBER,
            value_kind=DataKind.NUMERICAL,
        ),
    )
    assert record.status == "success"
    scale_id = mark.mappings["height"].scale
    scale = next(scale for scale in bar_store.chart.scales if scale.id == scale_id)
    assert (scale.properties["domain_min"], scale.properties["domain_max"]) == (-1.0, 7.0)
    scale_attributes = bar_store.chart_state.scales[scale_id].attributes
    low, high = scale_attributes["range_min"], scale_attributes["range_max"]
    for glyph_state, t in zip(_glyph_states(bar_store), [0.5, 0.0, 1.0, 0.375]):
        height = glyph_state.marks[mark.id].attributes["height"]
        assert height == pytest.approx((1.0 - t) * low + t * high)


def test_categorical_color_mapping_follows_occurrence_order(bar_store) -> None:
    """类别颜色按首次出现顺序取调色板颜色。"""

    scale_id = _map_fill_by_category(bar_store)
    scale = next(scale for scale in bar_store.chart.scales if scale.id == scale_id)
    assert scale.properties["order"] == ["b", "a", "c"]
    fills = [glyph.marks[_mark(bar_store).id].attributes["fill"] for glyph in _glyph_states(bar_store)]
    assert fills == ["#1f77b4", "#ff7f0e", "#1f77b4", "#2ca02c"]


def test_text_mapping_uses_template(bar_store) -> None:
    """文本属性不需要 Scale，数值以一位小数的模板写入。"""

    from apps.chart_engine.contracts.actions import AddMarkToGlyph

    glyph = bar_store.chart.glyphs[0]
    bar_store.dispatch(AddMarkToGlyph(glyph=glyph.id, class_id="mark.text"))
    text_mark = glyph.marks[-1]
    bar_store.dispatch(
        MapDataToChartElementAttribute(
            element=text_mark.id,
            attribute="text",
            attribute_type="text",
            table="sales",
            expression="value",
            value_type=DataType.NUMBER,
            value_kind=DataKind.NUMERICAL,
        ),
    )
    assert text_mark.mappings["text"].text_expression == "${value}{.1f}"
    texts = [state.marks[text_mark.id].attributes["text"] for state in _glyph_states(bar_store)]
    assert texts == ["3.0", "-1.0", "7.0", "2.0"]


def test_failed_action_rolls_back_and_suppresses_notifications(bar_store) -> None:
    """定义域为空时动作失败，规范与状态恢复，不派发任何通知。"""

    calls = []
    for event in ("structure", "selection", "graphics"):
        bar_store.events.subscribe(event, calls.append)
    chart_hash = compute_chart_hash(chart=bar_store.chart)
    state_before = bar_store.chart_state.model_dump()
    with pytest.raises(EmptyDomainError):
        bar_store.dispatch(
            MapDataToChartElementAttribute(
                element=_mark(bar_store).id,
                attribute="height",
                attribute_type="number",
                table="sales",
                expression="score",
                value_type=DataType.NUMBER,
                value_kind=DataKind.NUMERICAL,
            ),
        )
    assert compute_chart_hash(chart=bar_store.chart) == chart_hash
    assert bar_store.chart_state.model_dump() == state_before
    record = bar_store.recorder.records[-1]
    assert record.status == "failed"
    assert record.error_class == "EmptyDomainError"
    assert calls == []


def test_filter_keeps_glyph_state_identity(bar_store) -> None:
    """过滤后保留下来的分组沿用原 glyph 状态对象。"""

    before = {glyph.group_key: glyph for glyph in _glyph_states(bar_store)}
    record = bar_store.dispatch(
        SetPlotSegmentFilter(plot_segment=_plot_segment(bar_store).id, filter=Filter(expression="value > 0")),
    )
    after = _glyph_states(bar_store)
    assert [glyph.group_key for glyph in after] == ["0", "2", "3"]
    assert after[0] is before["0"]
    assert record.events == ["structure", "graphics"]


def test_group_by_merges_rows(bar_store) -> None:
    """按类别分组后每个类别一个 glyph，行号按首次出现聚合。"""

    bar_store.dispatch(
        SetPlotSegmentGroupBy(plot_segment=_plot_segment(bar_store).id, group_by=GroupBy(expression="category")),
    )
    assert [(glyph.group_key, glyph.row_indices) for glyph in _glyph_states(bar_store)] == [
        ("b", [0, 2]),
        ("a", [1]),
        ("c", [3]),
    ]


def test_repeated_solve_is_stable(bar_store) -> None:
    """没有新变更时再次求解不改变已求解的数值。"""

    mark = _mark(bar_store)
    bar_store.dispatch(
        MapDataToChartElementAttribute(
            element=mark.id,
            attribute="height",
            attribute_type="number",
            table="sales",
            expression="value",
            value_type=DataType.NUMBER,
            value_kind=DataKind.NUMERICAL,
        ),
    )
    first = [dict(glyph.marks[mark.id].attributes) for glyph in _glyph_states(bar_store)]
    bar_store.solve_constraints_and_update_graphics()
    second = [dict(glyph.marks[mark.id].attributes) for glyph in _glyph_states(bar_store)]
    for before, after in zip(first, second):
        for name in ("x1", "x2", "y1", "y2", "height", "width"):
            assert after[name] == pytest.approx(before[name], abs=1e-6)


def test_snap_propagates_target_changes(empty_store) -> None:
    """吸附后目标属性变化时被吸附元素随之移动并保持间距。"""

    first, second = _add_legends(empty_store)
    empty_store.dispatch(SetChartElementMapping(element=second, attribute="x", mapping=ValueMapping(value=10.0)))
    empty_store.dispatch(
        SnapChartElements(element=first, attribute="x", target_element=second, target_attribute="x", gap=5.0),
    )
    attributes = empty_store.chart_state.elements
    assert attributes[first].attributes["x"] == pytest.approx(15.0)

    empty_store.dispatch(SetChartElementMapping(element=second, attribute="x", mapping=None))
    empty_store.add_presolve_value(ConstraintStrength.WEAK, second, "x", 20.0)
    empty_store.solve_constraints_and_update_graphics()
    assert attributes[second].attributes["x"] == pytest.approx(20.0)
    assert attributes[first].attributes["x"] == pytest.approx(25.0)


def test_contradictory_snaps_fail_only_their_subgraph(empty_store) -> None:
    """互相吸附的矛盾约束只让所在子图失败，其他元素照常求解。"""

    first, second, third = _add_legends(empty_store, count=3)
    empty_store.dispatch(SetChartElementMapping(element=third, attribute="x", mapping=ValueMapping(value=7.0)))
    empty_store.dispatch(
        SnapChartElements(element=first, attribute="x", target_element=second, target_attribute="x", gap=5.0),
    )
    elements = empty_store.chart_state.elements
    before = (elements[first].attributes["x"], elements[second].attributes["x"])

    record = empty_store.dispatch(
        SnapChartElements(element=second, attribute="x", target_element=first, target_attribute="x", gap=5.0),
    )
    assert record.status == "partial"
    assert len(empty_store.last_report.failures) == 1
    assert (elements[first].attributes["x"], elements[second].attributes["x"]) == before

    record = empty_store.dispatch(
        SetChartElementMapping(element=third, attribute="x", mapping=ValueMapping(value=9.0)),
    )
    assert record.status == "partial"
    assert elements[third].attributes["x"] == pytest.approx(9.0)


def test_direct_update_replaces_snap(empty_store) -> None:
    """直接赋值会移除该属性上的吸附约束。"""

    first, second = _add_legends(empty_store)
    empty_store.dispatch(
        SnapChartElements(element=first, attribute="y", target_element=second, target_attribute="y"),
    )
    assert len(empty_store.chart.constraints) == 1
    empty_store.dispatch(UpdateChartElementAttribute(element=first, updates={"y": 42.0}))
    assert empty_store.chart.constraints == []
    assert empty_store.chart_state.elements[first].attributes["y"] == pytest.approx(42.0)


def test_delete_element_removes_references(empty_store) -> None:
    """删除元素后不再有约束或映射引用它。"""

    first, second = _add_legends(empty_store)
    empty_store.dispatch(
        SnapChartElements(element=first, attribute="x", target_element=second, target_attribute="x"),
    )
    record = empty_store.dispatch(DeleteChartElement(element=second))
    assert record.status == "success"
    assert all(not constraint.references(second) for constraint in empty_store.chart.constraints)
    assert second not in empty_store.chart_state.elements
    assert empty_store.selection is None


def test_missing_reference_is_noop(empty_store) -> None:
    """引用不存在的元素时周期状态为 noop，不修改规范。"""

    chart_hash = compute_chart_hash(chart=empty_store.chart)
    record = empty_store.dispatch(DeleteChartElement(element="missing"))
    assert record.status == "noop"
    assert record.events == []
    assert compute_chart_hash(chart=empty_store.chart) == chart_hash


def test_chart_size_drives_plot_area(empty_store) -> None:
    """图表尺寸变化后绘图区边界按留白重新求解。"""

    empty_store.dispatch(SetChartSize(width=1000.0, height=800.0))
    attributes = empty_store.chart_state.attributes
    assert attributes["x2"] == pytest.approx(450.0)
    assert attributes["y1"] == pytest.approx(-350.0)
    assert attributes["marginRight"] == 50.0
    assert attributes["marginBottom"] == 50.0

    empty_store.dispatch(SetChartSize(width=600.0, height=400.0))
    assert attributes["x1"] == pytest.approx(-250.0)
    assert attributes["x2"] == pytest.approx(250.0)
    assert attributes["marginLeft"] == 50.0


def test_chart_margin_update_moves_plot_area(empty_store) -> None:
    """修改留白后绘图区边界随之移动，图表尺寸不变。"""

    empty_store.dispatch(UpdateChartAttribute(updates={"marginLeft": 100.0, "marginTop": 20.0}))
    attributes = empty_store.chart_state.attributes
    assert attributes["width"] == pytest.approx(900.0)
    assert attributes["x1"] == pytest.approx(-350.0)
    assert attributes["y2"] == pytest.approx(280.0)
    assert attributes["cx"] == pytest.approx(25.0)


def test_reorder_chart_elements(empty_store) -> None:
    """移动到末尾，越界的索引为空操作。"""

    first, second = _add_legends(empty_store)
    empty_store.dispatch(ReorderChartElement(from_index=0, to_index=2))
    assert [element.id for element in empty_store.chart.elements] == [second, first]
    assert empty_store.dispatch(ReorderChartElement(from_index=5, to_index=0)).status == "noop"


def test_extend_plot_segment_switches_class(bar_store) -> None:
    """扩展为极坐标时切换类，保留边界映射，丢弃直角坐标独有属性。"""

    plot_segment = _plot_segment(bar_store)
    bar_store.dispatch(
        SetChartElementMapping(element=plot_segment.id, attribute="x1", mapping=ValueMapping(value=-250.0)),
    )
    bar_store.dispatch(SetObjectProperty(object=plot_segment.id, property="cartesianOnly", value=True))
    record = bar_store.dispatch(ExtendPlotSegment(plot_segment=plot_segment.id, extension="polar"))
    assert "structure" in record.events
    assert plot_segment.class_id == "plot-segment.polar"
    assert set(plot_segment.mappings) == {"x1"}
    assert "cartesianOnly" not in plot_segment.properties
    attributes = bar_store.chart_state.elements[plot_segment.id].attributes
    assert "radial1" in attributes
    assert "innerX1" not in attributes
    assert attributes["x1"] == pytest.approx(-250.0)


def test_extend_same_class_sets_default_axis(bar_store) -> None:
    """cartesian-y 不切换类，只写入默认坐标轴绑定。"""

    plot_segment = _plot_segment(bar_store)
    bar_store.dispatch(ExtendPlotSegment(plot_segment=plot_segment.id, extension="cartesian-y"))
    assert plot_segment.class_id == "plot-segment.cartesian"
    assert plot_segment.properties["yData"]["type"] == "default"


def test_set_object_property_with_field_path(bar_store) -> None:
    """字段路径写入嵌套属性，缺失的中间层自动创建。"""

    plot_segment = _plot_segment(bar_store)
    bar_store.dispatch(
        SetObjectProperty(object=plot_segment.id, property="sublayout", field=["ratio_x"], value=0.3),
    )
    assert plot_segment.properties["sublayout"]["ratio_x"] == 0.3
    assert set_field(None, ["a", "b"], 1) == {"a": {"b": 1}}
    with pytest.raises(ValueError):
        set_field({"a": 1}, ["a", "b"], 2)


def test_toggle_legend_adds_and_removes(bar_store) -> None:
    """第一次切换添加吸附到图表右上角的图例，第二次删除。"""

    scale_id = _map_fill_by_category(bar_store)
    bar_store.dispatch(ToggleLegendForScale(scale=scale_id))
    legends = [element for element in bar_store.chart.elements if element.class_id == "legend.categorical"]
    assert len(legends) == 1
    legend_state = bar_store.chart_state.elements[legends[0].id].attributes
    assert legend_state["x"] == pytest.approx(bar_store.chart_state.attributes["x2"])
    bar_store.dispatch(ToggleLegendForScale(scale=scale_id))
    assert not any(element.class_id.startswith("legend.") for element in bar_store.chart.elements)


def test_add_links_names_and_rejects_duplicates(bar_store) -> None:
    """连线获得唯一名称并被选中，重复标识被拒绝且不留下改动。"""

    links = ChartElement(class_id="links.through")
    record = bar_store.dispatch(AddLinks(links=links))
    added = next(element for element in bar_store.chart.elements if element.id == links.id)
    assert added.properties["name"] == "Link1"
    assert added.properties["linkType"] == "line"
    assert bar_store.selection == links.id
    assert record.events == ["structure", "selection", "graphics"]
    count = len(bar_store.chart.elements)
    with pytest.raises(ValueError):
        bar_store.dispatch(AddLinks(links=links))
    assert len(bar_store.chart.elements) == count
    assert bar_store.recorder.records[-1].status == "failed"


def test_bind_data_to_axis_infers_categories(bar_store) -> None:
    """类别坐标轴按元数据的排序方式填充类别，值类型为字符串。"""

    plot_segment = _plot_segment(bar_store)
    bar_store.dispatch(
        BindDataToAxis(
            object=plot_segment.id,
            property="xData",
            table="sales",
            expression="category",
            value_type=DataType.STRING,
            metadata=ColumnMetadata(kind=DataKind.CATEGORICAL, order_mode="occurrence"),
        ),
    )
    binding = plot_segment.properties["xData"]
    assert binding["type"] == "categorical"
    assert binding["categories"] == ["b", "a", "c"]
    assert binding["value_type"] == "string"


def test_bind_numeric_axis_sets_domain(bar_store) -> None:
    """数值坐标轴记录定义域，glyph 按取值排布。"""

    plot_segment = _plot_segment(bar_store)
    bar_store.dispatch(
        BindDataToAxis(
            object=plot_segment.id,
            property="yData",
            table="sales",
            expression="value",
            value_type=DataType.NUMBER,
            metadata=ColumnMetadata(kind=DataKind.NUMERICAL),
        ),
    )
    binding = plot_segment.properties["yData"]
    assert (binding["type"], binding["domain_min"], binding["domain_max"]) == ("numerical", -1.0, 7.0)
    glyphs = _glyph_states(bar_store)
    # value=-1 位于内框下边界，value=7 位于上边界
    inner = bar_store.chart_state.elements[plot_segment.id].attributes
    assert glyphs[1].attributes["y"] == pytest.approx(inner["innerY1"])
    assert glyphs[2].attributes["y"] == pytest.approx(inner["innerY2"])
