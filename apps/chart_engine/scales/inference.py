"""Scale 推断：由数据表达式生成或复用 Scale。"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Union

from apps.chart_engine.contracts.actions import ScaleHints
from apps.chart_engine.contracts.dataset import ColumnMetadata, DataKind
from apps.chart_engine.contracts.specification import AxisDataBinding, Chart, GroupBy, Scale
from apps.chart_engine.expression import parse
from apps.chart_engine.scales.categorical import CategoricalScale
from apps.chart_engine.scales.mapping import RuntimeScale, is_categorical, scale_class_id, to_runtime
from apps.chart_engine.scales.numeric import DateScale, LinearScale
from apps.chart_engine.scales.palettes import categorical_color
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)

_OUTPUT_TYPES = {"number": "number", "color": "color", "boolean": "boolean"}


def _kind_family(kind: DataKind) -> str:
    if kind in {DataKind.CATEGORICAL, DataKind.ORDINAL}:
        return "categorical"
    return kind.value


def _category_output(output_type: str, index: int) -> Any:
    if output_type == "color":
        return categorical_color(index)
    if output_type == "boolean":
        return True
    return float(index + 1)


class ScaleInferenceEngine:
    """根据分组取值推断 Scale，并在可能时复用已有 Scale。

    复用规则：数据表、数据种类族与输出类型一致的 Scale 才是候选；
    候选已包含相同表达式时直接复用；类别 Scale 在新类别是已有定义域
    子集时复用；连续 Scale 在两个区间互相包含时复用并扩展为并集。
    """

    def __init__(self, store: DatasetStore) -> None:
        self._store = store

    def extract_values(
        self,
        table: str,
        expressions: Sequence[str],
        group_by: Optional[GroupBy] = None,
    ) -> List[Any]:
        """依次对每个表达式取分组值并拼接。"""

        values: List[Any] = []
        for expression in expressions:
            values.extend(self._store.get_grouped_values(table, group_by, expression))
        return values

    def resolve_order_hints(
        self,
        table: str,
        expressions: Sequence[str],
        hints: Optional[ScaleHints] = None,
    ) -> Optional[ScaleHints]:
        """用字段元数据补全类别排序提示。

        表达式只引用一个字段时，调用方未给出的 ``order`` 与 ``order_mode``
        取自该字段的 ``ColumnMetadata``；调用方给出的值优先。
        """

        names = set()
        for expression in expressions:
            names |= parse(expression).column_names()
        if len(names) != 1:
            return hints
        (name,) = names
        column = next((column for column in self._store.get_table(table).columns if column.name == name), None)
        if column is None:
            return hints
        metadata = column.metadata
        if hints is None:
            hints = ScaleHints()
        return hints.model_copy(
            update={
                "order": hints.order or metadata.order,
                "order_mode": hints.order_mode or metadata.order_mode,
            },
        )

    @staticmethod
    def infer_domain(
        values: Sequence[Any],
        data_kind: DataKind,
        hints: Optional[ScaleHints] = None,
    ) -> RuntimeScale:
        """按数据种类推断运行期 Scale。

        Raises
        ------
        EmptyDomainError
            值向量为空或全部为空值。
        DomainError
            值向量类型不一致。
        """

        if data_kind in {DataKind.CATEGORICAL, DataKind.ORDINAL}:
            order_mode = "alphabetically"
            order = None
            if hints is not None:
                order_mode = hints.order_mode or order_mode
                order = hints.order
            return CategoricalScale().infer_parameters(values, order_mode, order)
        if data_kind == DataKind.TEMPORAL:
            return DateScale().infer_parameters(values)
        return LinearScale().infer_parameters(values)

    def infer(
        self,
        chart: Chart,
        *,
        table: str,
        expressions: Union[str, Sequence[str]],
        data_kind: DataKind,
        attribute_type: str,
        hints: Optional[ScaleHints] = None,
        group_by: Optional[GroupBy] = None,
    ) -> Optional[str]:
        """推断 Scale 并写入 ``chart.scales``。

        Parameters
        ----------
        chart: Chart
            图表规范，新建的 Scale 追加到 ``chart.scales``。
        table: str
            数据表名称。
        expressions: Union[str, Sequence[str]]
            一个或多个表达式，多个表达式的取值合并到同一 Scale。
        data_kind: DataKind
            数据种类。
        attribute_type: str
            目标属性类型，文本属性不需要 Scale。
        hints: Optional[ScaleHints]
            排序与值域提示。
        group_by: Optional[GroupBy]
            取值时使用的分组规则。

        Returns
        -------
        Optional[str]
            Scale 标识，无需 Scale 时返回 None。
        """

        output_type = _OUTPUT_TYPES.get(attribute_type)
        if output_type is None:
            return None
        if data_kind in {DataKind.NUMERICAL, DataKind.TEMPORAL} and output_type == "boolean":
            return None
        if isinstance(expressions, str):
            expressions = [expressions]
        values = self.extract_values(table, expressions, group_by)
        if data_kind in {DataKind.CATEGORICAL, DataKind.ORDINAL}:
            hints = self.resolve_order_hints(table, expressions, hints)
        runtime = self.infer_domain(values, data_kind, hints)
        reusable = self._find_reusable(chart, table, data_kind, output_type, expressions, runtime)
        if reusable is not None:
            self._merge(reusable, expressions, runtime)
            LOGGER.debug(
                "Scale reused",
                extra={"scale_id": reusable.id, "expressions": list(expressions)},
            )
            return reusable.id
        scale = Scale(
            class_id=scale_class_id(data_kind, output_type),
            table=table,
            data_kind=data_kind,
            output_type=output_type,
            expressions=list(expressions),
            properties=self._build_properties(runtime, output_type, hints),
        )
        chart.scales.append(scale)
        LOGGER.info(
            "Scale created",
            extra={"scale_id": scale.id, "class_id": scale.class_id, "table": table},
        )
        return scale.id

    @staticmethod
    def _build_properties(runtime: RuntimeScale, output_type: str, hints: Optional[ScaleHints]) -> dict:
        if isinstance(runtime, CategoricalScale):
            categories = runtime.categories
            return {
                "order": categories,
                "mapping": {key: _category_output(output_type, index) for index, key in enumerate(categories)},
            }
        properties = {"domain_min": runtime.domain_min, "domain_max": runtime.domain_max}
        if output_type == "number":
            if hints is not None and hints.range_min is not None:
                properties["range_min"] = hints.range_min
            if hints is not None and hints.range_max is not None:
                properties["range_max"] = hints.range_max
        return properties

    @staticmethod
    def _find_reusable(
        chart: Chart,
        table: str,
        data_kind: DataKind,
        output_type: str,
        expressions: Sequence[str],
        runtime: RuntimeScale,
    ) -> Optional[Scale]:
        for scale in chart.scales:
            if scale.table != table or scale.output_type != output_type:
                continue
            if _kind_family(scale.data_kind) != _kind_family(data_kind):
                continue
            if set(expressions) & set(scale.expressions):
                return scale
            existing = to_runtime(scale)
            if isinstance(runtime, CategoricalScale):
                if set(runtime.domain) <= set(existing.domain):
                    return scale
                continue
            inside = existing.domain_min <= runtime.domain_min and runtime.domain_max <= existing.domain_max
            covers = runtime.domain_min <= existing.domain_min and existing.domain_max <= runtime.domain_max
            if inside or covers:
                return scale
        return None

    @staticmethod
    def _merge(scale: Scale, expressions: Sequence[str], runtime: RuntimeScale) -> None:
        for expression in expressions:
            if expression not in scale.expressions:
                scale.expressions.append(expression)
        if is_categorical(scale):
            order = scale.properties.setdefault("order", [])
            mapping = scale.properties.setdefault("mapping", {})
            for key in runtime.categories:
                if key not in mapping:
                    mapping[key] = _category_output(scale.output_type, len(order))
                    order.append(key)
            return
        scale.properties["domain_min"] = min(float(scale.properties["domain_min"]), runtime.domain_min)
        scale.properties["domain_max"] = max(float(scale.properties["domain_max"]), runtime.domain_max)

    def build_axis_binding(
        self,
        binding: AxisDataBinding,
        values: Sequence[Any],
        metadata: ColumnMetadata,
    ) -> AxisDataBinding:
        """以与 Scale 推断相同的规则填充坐标轴绑定的类别顺序或数值定义域。"""

        hints = ScaleHints(order_mode=metadata.order_mode, order=metadata.order)
        runtime = self.infer_domain(values, metadata.kind, hints)
        if isinstance(runtime, CategoricalScale):
            return binding.model_copy(
                update={
                    "type": "categorical",
                    "categories": runtime.categories,
                    "domain_min": None,
                    "domain_max": None,
                    "numerical_mode": None,
                },
            )
        return binding.model_copy(
            update={
                "type": "numerical",
                "categories": None,
                "domain_min": runtime.domain_min,
                "domain_max": runtime.domain_max,
                "numerical_mode": "temporal" if isinstance(runtime, DateScale) else "linear",
            },
        )
