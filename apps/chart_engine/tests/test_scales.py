"""Scale 推断、复用与取值映射测试。"""

from __future__ import annotations

import pytest

from apps.chart_engine.contracts.actions import ScaleHints
from apps.chart_engine.contracts.dataset import DataKind
from apps.chart_engine.contracts.specification import Chart, Scale
from apps.chart_engine.errors import DomainError, EmptyDomainError
from apps.chart_engine.scales import (
    CategoricalScale,
    DateScale,
    LinearScale,
    ScaleInferenceEngine,
    initial_scale_attributes,
    map_value,
)


def test_category_order_modes() -> None:
    """首次出现顺序与字典序。"""

    values = ["b", "a", "b", "c"]
    assert CategoricalScale().infer_parameters(values, "occurrence").categories == ["b", "a", "c"]
    assert CategoricalScale().infer_parameters(values, "alphabetically").categories == ["a", "b", "c"]


def test_explicit_order_wins_and_appends_unknown_categories() -> None:
    """显式顺序优先，未列出的类别按出现顺序追加。"""

    scale = CategoricalScale().infer_parameters(["b", "a", "c"], "alphabetically", ["c", "a"])
    assert scale.categories == ["c", "a", "b"]


def test_numeric_order_mode_sorts_naturally() -> None:
    """order 模式下数值类别按大小排序。"""

    scale = CategoricalScale().infer_parameters([10, 9, 100], "order")
    assert scale.categories == ["9", "10", "100"]


def test_linear_domain_and_empty_vector() -> None:
    """数值定义域取最小最大值，空向量抛出 DomainError。"""

    scale = LinearScale().infer_parameters([3, -1, 7, 2])
    assert (scale.domain_min, scale.domain_max) == (-1.0, 7.0)
    with pytest.raises(DomainError):
        LinearScale().infer_parameters([])
    with pytest.raises(EmptyDomainError):
        LinearScale().infer_parameters([None, None])


def test_mixed_types_are_rejected() -> None:
    """类型不一致的值向量无法推断。"""

    with pytest.raises(DomainError):
        LinearScale().infer_parameters([1, "x"])
    with pytest.raises(DomainError):
        CategoricalScale().infer_parameters(["a", 1])


def test_date_scale_accepts_iso_strings() -> None:
    """日期 Scale 以毫秒时间戳保存定义域。"""

    scale = DateScale().infer_parameters(["2024-01-02", "2024-01-01"])
    assert scale.domain_max - scale.domain_min == 86_400_000.0
    assert scale.fraction("2024-01-02") == 1.0


def test_inference_reuses_scale_for_compatible_domains(dataset_store) -> None:
    """同表同种类、定义域互相包含时复用同一 Scale 并扩展为并集。"""

    engine = ScaleInferenceEngine(dataset_store)
    chart = Chart()
    first = engine.infer(chart, table="sales", expressions="value", data_kind=DataKind.NUMERICAL, attribute_type="number")
    second = engine.infer(
        chart,
        table="sales",
        expressions="value * 2",
        data_kind=DataKind.NUMERICAL,
        attribute_type="number",
    )
    assert first == second
    assert len(chart.scales) == 1
    scale = chart.scales[0]
    assert (scale.properties["domain_min"], scale.properties["domain_max"]) == (-2.0, 14.0)
    assert scale.expressions == ["value", "value * 2"]


def test_inference_keeps_separate_scales_for_other_outputs(dataset_store) -> None:
    """输出类型不同的映射不共享 Scale，文本属性不需要 Scale。"""

    engine = ScaleInferenceEngine(dataset_store)
    chart = Chart()
    number_scale = engine.infer(
        chart,
        table="sales",
        expressions="category",
        data_kind=DataKind.CATEGORICAL,
        attribute_type="number",
    )
    color_scale = engine.infer(
        chart,
        table="sales",
        expressions="category",
        data_kind=DataKind.CATEGORICAL,
        attribute_type="color",
        hints=ScaleHints(order_mode="occurrence"),
    )
    text_scale = engine.infer(chart, table="sales", expressions="category", data_kind=DataKind.CATEGORICAL, attribute_type="text")
    assert number_scale != color_scale
    assert text_scale is None
    color = next(scale for scale in chart.scales if scale.id == color_scale)
    assert color.properties["order"] == ["b", "a", "c"]
    assert color.properties["mapping"]["b"] == "#1f77b4"


def test_map_value_uses_range_attributes() -> None:
    """数值输出按状态中的 range_min/range_max 线性映射。"""

    scale = Scale(
        class_id="scale.linear<number,number>",
        table="sales",
        data_kind=DataKind.NUMERICAL,
        output_type="number",
        properties={"domain_min": 0.0, "domain_max": 10.0, "range_min": 0.0, "range_max": 200.0},
    )
    assert initial_scale_attributes(scale) == {"range_min": 0.0, "range_max": 200.0}
    assert map_value(scale, None, 5) == 100.0
    assert map_value(scale, None, None) is None


def test_map_value_interpolates_colors() -> None:
    """颜色输出在起止颜色之间插值。"""

    scale = Scale(
        class_id="scale.linear<number,color>",
        table="sales",
        data_kind=DataKind.NUMERICAL,
        output_type="color",
        properties={"domain_min": 0.0, "domain_max": 1.0, "color_start": "#000000", "color_end": "#ffffff"},
    )
    assert map_value(scale, None, 0.0) == "#000000"
    assert map_value(scale, None, 1.0) == "#ffffff"


def _ordered_store(order):
    """category 字段声明了显式顺序的数据集。"""

    from apps.chart_engine.contracts.dataset import Column, ColumnMetadata, Dataset, DataType, Table
    from apps.chart_engine.stores import DatasetStore

    column = Column(
        name="category",
        type=DataType.STRING,
        metadata=ColumnMetadata(kind=DataKind.CATEGORICAL, order=order),
    )
    rows = [{"category": value} for value in ["b", "a", "b", "c"]]
    return DatasetStore(dataset=Dataset(name="ordered", tables=[Table(name="items", columns=[column], rows=rows)]))


def test_inference_uses_column_order_without_hints() -> None:
    """未给出排序提示时采用字段元数据中的显式顺序，调用方提示优先。"""

    engine = ScaleInferenceEngine(_ordered_store(["c", "b", "a"]))
    chart = Chart()
    scale_id = engine.infer(
        chart,
        table="items",
        expressions="category",
        data_kind=DataKind.CATEGORICAL,
        attribute_type="color",
    )
    scale = next(scale for scale in chart.scales if scale.id == scale_id)
    assert scale.properties["order"] == ["c", "b", "a"]
    assert scale.properties["mapping"]["c"] == "#1f77b4"

    hints = engine.resolve_order_hints("items", ["category"], ScaleHints(order=["a", "b", "c"]))
    assert hints.order == ["a", "b", "c"]
    assert engine.resolve_order_hints("items", ["1 + 2"]) is None


def test_axis_binding_matches_inferred_scale_order() -> None:
    """坐标轴类别顺序与 Scale 推断结果一致：未出现的类别去掉，未列出的追加。"""

    from apps.chart_engine.contracts.dataset import ColumnMetadata
    from apps.chart_engine.contracts.specification import AxisDataBinding

    store = _ordered_store(["c", "a", "z"])
    engine = ScaleInferenceEngine(store)
    chart = Chart()
    scale_id = engine.infer(
        chart,
        table="items",
        expressions="category",
        data_kind=DataKind.CATEGORICAL,
        attribute_type="color",
    )
    scale = next(scale for scale in chart.scales if scale.id == scale_id)
    values = store.get_grouped_values("items", None, "category")
    metadata = ColumnMetadata(kind=DataKind.CATEGORICAL, order=["c", "a", "z"])
    binding = engine.build_axis_binding(AxisDataBinding(type="default"), values, metadata)
    assert binding.categories == ["c", "a", "b"]
    assert binding.categories == scale.properties["order"]
