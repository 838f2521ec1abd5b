"""编辑动作处理器。

每个处理器接收 ChartStore 与动作模型，通过 ChartManager 修改规范，
随后触发求解。动作引用的节点不存在时记录警告并作为空操作返回 False。
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Type, Union

from apps.chart_engine.contracts.actions import (
    AddChartElement,
    AddGlyph,
    AddLinks,
    AddMarkToGlyph,
    BindDataToAxis,
    DeleteChartElement,
    ExtendPlotSegment,
    MapDataToChartElementAttribute,
    ReorderChartElement,
    ReorderGlyphMark,
    SetChartAttribute,
    SetChartElementMapping,
    SetChartSize,
    SetObjectProperty,
    SetPlotSegmentFilter,
    SetPlotSegmentGroupBy,
    SetScaleAttribute,
    SnapChartElements,
    ToggleLegendForScale,
    UpdateChartAttribute,
    UpdateChartElementAttribute,
)
from apps.chart_engine.contracts.dataset import DataType
from apps.chart_engine.contracts.specification import (
    AxisDataBinding,
    ChartElement,
    Constraint,
    Glyph,
    PlotSegment,
    Scale,
    ScaleMapping,
    SnapAttributes,
    SnapMapping,
    TextMapping,
    ValueMapping,
    unique_id,
)
from apps.chart_engine.expression import TextExpression, parse
from apps.chart_engine.expression.text import TextPart
from apps.chart_engine.prototypes import get_class, is_type
from apps.chart_engine.prototypes.plot_segments import DEFAULT_AXIS_STYLE, default_axis_binding
from apps.chart_engine.services.chart_manager import ChartManager
from apps.chart_engine.services.notifications import EVENT_GRAPHICS, EVENT_SELECTION, EVENT_STRUCTURE
from apps.chart_engine.solver.kernel import ConstraintStrength

if TYPE_CHECKING:
    from apps.chart_engine.services.chart_store import ChartStore

LOGGER = logging.getLogger(__name__)

Handler = Callable[["ChartStore", Any], Optional[bool]]

EXTENSION_CLASSES = {
    "cartesian-x": "plot-segment.cartesian",
    "polar": "plot-segment.polar",
    "curve": "plot-segment.curve",
}


class ActionHandlerRegistry:
    """动作类型到处理器的注册表。"""

    def __init__(self) -> None:
        self._handlers: Dict[Type[Any], Handler] = {}

    def add(self, action_type: Type[Any]) -> Callable[[Handler], Handler]:
        """注册处理器的装饰器，同一动作类型只能注册一次。"""

        def decorator(handler: Handler) -> Handler:
            if action_type in self._handlers:
                raise ValueError(f"动作 {action_type.__name__} 重复注册。")
            self._handlers[action_type] = handler
            return handler

        return decorator

    def handle(self, store: "ChartStore", action: Any) -> bool:
        """执行动作，返回动作是否生效。

        Raises
        ------
        ValueError
            动作类型未注册。
        """

        handler = self._handlers.get(type(action))
        if handler is None:
            raise ValueError(f"未注册的动作类型 {type(action).__name__}。")
        return handler(store, action) is not False

    @property
    def action_types(self) -> List[Type[Any]]:
        return list(self._handlers)


REGISTRY = ActionHandlerRegistry()


def default_registry() -> ActionHandlerRegistry:
    return REGISTRY


def _missing(action: Any, **references: Any) -> bool:
    LOGGER.warning(
        "Action reference missing",
        extra={"action": type(action).__name__, "references": references},
    )
    return False


def _find(manager: ChartManager, object_id: str, kind: Union[type, tuple]) -> Any:
    node = manager.find_object(object_id)
    return node if isinstance(node, kind) else None


def _find_chart_element(manager: ChartManager, element_id: str) -> Optional[ChartElement]:
    """只在图表元素中查找，glyph 内的标记不算。"""

    return next((element for element in manager.chart.elements if element.id == element_id), None)


def _mappable(manager: ChartManager, object_id: str) -> Any:
    """返回带 ``mappings`` 的节点：图表、图表元素、glyph 或标记。"""

    node = manager.find_object(object_id)
    return None if isinstance(node, Scale) else node


def _drop_snaps(constraints: Sequence[Constraint], element_id: str, attribute: str) -> List[Constraint]:
    return [
        constraint
        for constraint in constraints
        if not (constraint.attributes.element == element_id and constraint.attributes.attribute == attribute)
    ]


def _remove_snaps_on(manager: ChartManager, element_id: str, attribute: str) -> None:
    manager.chart.constraints = _drop_snaps(manager.chart.constraints, element_id, attribute)
    glyph = manager.glyph_of_mark(element_id)
    if glyph is not None:
        glyph.constraints = _drop_snaps(glyph.constraints, element_id, attribute)


def set_field(target: Any, field: Union[str, Sequence[str]], value: Any) -> Any:
    """按字段路径写入嵌套的字典或列表，缺失的中间层创建为字典。

    Returns
    -------
    Any
        写入后的顶层对象，``target`` 为空时返回新建的字典。
    """

    path = [field] if isinstance(field, str) else list(field)
    if not path:
        raise ValueError("字段路径不能为空。")
    root = target if target is not None else {}
    current = root
    for position, key in enumerate(path):
        last = position == len(path) - 1
        if isinstance(current, list):
            index = int(key)
            if last:
                current[index] = value
                break
            current = current[index]
            continue
        if not isinstance(current, dict):
            raise ValueError(f"字段路径 {path} 经过非容器取值。")
        if last:
            current[key] = value
            break
        if current.get(key) is None:
            current[key] = {}
        current = current[key]
    return root


@REGISTRY.add(MapDataToChartElementAttribute)
def map_data_to_chart_element_attribute(store: "ChartStore", action: MapDataToChartElementAttribute) -> Optional[bool]:
    manager = store.manager
    node = _mappable(manager, action.element)
    if node is None:
        return _missing(action, element=action.element)
    store.save_history()
    scale_id = manager.infer_scale(
        table=action.table,
        expressions=action.expression,
        data_kind=action.value_kind,
        attribute_type=action.attribute_type,
        hints=action.hints,
        group_by=manager.find_group_by(node.id),
    )
    if scale_id is not None:
        node.mappings[action.attribute] = ScaleMapping(
            table=action.table,
            expression=action.expression,
            value_type=action.value_type,
            scale=scale_id,
        )
    elif action.attribute_type == "text" and action.value_type in {DataType.STRING, DataType.NUMBER}:
        # 数值以一位小数显示
        text_format = ".1f" if action.value_type == DataType.NUMBER else None
        template = TextExpression(
            [TextPart(expression=parse(action.expression), source=action.expression, format=text_format)],
        )
        node.mappings[action.attribute] = TextMapping(table=action.table, text_expression=str(template))
    else:
        LOGGER.info(
            "No mapping inferred",
            extra={"element": node.id, "attribute": action.attribute, "value_kind": action.value_kind.value},
        )
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(AddChartElement)
def add_chart_element(store: "ChartStore", action: AddChartElement) -> Optional[bool]:
    manager = store.manager
    glyph: Optional[Glyph] = None
    for candidate in (action.glyph, store.current_glyph):
        if candidate is not None:
            glyph = _find(manager, candidate, Glyph)
            if glyph is not None:
                break
    if glyph is None and manager.chart.glyphs:
        glyph = manager.chart.glyphs[0]
    if is_type(action.class_id, "plot-segment") and glyph is None:
        return _missing(action, glyph=action.glyph)
    store.save_history()
    element = manager.create_object(action.class_id, glyph=glyph, table=action.table)
    element.properties.update(copy.deepcopy(action.properties))
    manager.add_chart_element(element)
    element_cls = get_class(element.class_id)
    attributes = manager.state.elements[element.id].attributes
    for attribute, seed in action.mappings.items():
        if seed.mapping is not None:
            if isinstance(seed.mapping, SnapMapping):
                manager.chart.constraints.append(
                    Constraint(
                        attributes=SnapAttributes(
                            element=element.id,
                            attribute=attribute,
                            target_element=seed.mapping.element,
                            target_attribute=seed.mapping.attribute,
                        ),
                    ),
                )
            else:
                element.mappings[attribute] = seed.mapping
        if seed.value is not None:
            attributes[attribute] = seed.value
            if element_cls.is_solvable(attribute):
                store.add_presolve_value(ConstraintStrength.HARD, element.id, attribute, seed.value)
    store.selection = element.id
    store.emit(EVENT_STRUCTURE)
    store.emit(EVENT_SELECTION)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(AddGlyph)
def add_glyph(store: "ChartStore", action: AddGlyph) -> Optional[bool]:
    store.dataset_store.get_table(action.table)
    store.save_history()
    glyph = store.manager.add_glyph(action.table, action.class_id)
    store.current_glyph = glyph.id
    store.emit(EVENT_STRUCTURE)
    return None


@REGISTRY.add(AddMarkToGlyph)
def add_mark_to_glyph(store: "ChartStore", action: AddMarkToGlyph) -> Optional[bool]:
    manager = store.manager
    glyph = _find(manager, action.glyph, Glyph)
    if glyph is None:
        return _missing(action, glyph=action.glyph)
    if not is_type(action.class_id, "mark"):
        raise ValueError(f"glyph 只能包含 mark 类元素，收到 {action.class_id}。")
    store.save_history()
    mark = manager.create_object(action.class_id)
    mark.properties.update(copy.deepcopy(action.properties))
    mark.mappings.update(action.mappings)
    manager.add_mark_to_glyph(mark, glyph)
    store.current_glyph = glyph.id
    store.selection = mark.id
    store.emit(EVENT_STRUCTURE)
    store.emit(EVENT_SELECTION)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetPlotSegmentFilter)
def set_plot_segment_filter(store: "ChartStore", action: SetPlotSegmentFilter) -> Optional[bool]:
    plot_segment = _find(store.manager, action.plot_segment, PlotSegment)
    if plot_segment is None:
        return _missing(action, plot_segment=action.plot_segment)
    store.save_history()
    plot_segment.filter = action.filter
    store.manager.remap_plot_segment_glyphs(plot_segment)
    store.emit(EVENT_STRUCTURE)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetPlotSegmentGroupBy)
def set_plot_segment_group_by(store: "ChartStore", action: SetPlotSegmentGroupBy) -> Optional[bool]:
    plot_segment = _find(store.manager, action.plot_segment, PlotSegment)
    if plot_segment is None:
        return _missing(action, plot_segment=action.plot_segment)
    store.save_history()
    plot_segment.group_by = action.group_by
    store.manager.remap_plot_segment_glyphs(plot_segment)
    store.emit(EVENT_STRUCTURE)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(UpdateChartElementAttribute)
def update_chart_element_attribute(store: "ChartStore", action: UpdateChartElementAttribute) -> Optional[bool]:
    manager = store.manager
    element = _find_chart_element(manager, action.element)
    if element is None:
        return _missing(action, element=action.element)
    store.save_history()
    attributes = manager.state.elements[element.id].attributes
    for attribute, value in action.updates.items():
        # 直接赋值会取代原有映射与吸附
        element.mappings.pop(attribute, None)
        _remove_snaps_on(manager, element.id, attribute)
        attributes[attribute] = value
        store.add_presolve_value(ConstraintStrength.STRONG, element.id, attribute, value)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetChartElementMapping)
def set_chart_element_mapping(store: "ChartStore", action: SetChartElementMapping) -> Optional[bool]:
    manager = store.manager
    node = _mappable(manager, action.element)
    if node is None or node is manager.chart:
        return _missing(action, element=action.element)
    store.save_history()
    if action.mapping is None:
        node.mappings.pop(action.attribute, None)
    else:
        node.mappings[action.attribute] = action.mapping
        _remove_snaps_on(manager, node.id, action.attribute)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SnapChartElements)
def snap_chart_elements(store: "ChartStore", action: SnapChartElements) -> Optional[bool]:
    manager = store.manager
    element = _find_chart_element(manager, action.element)
    target = _find_chart_element(manager, action.target_element)
    if target is None and action.target_element == manager.chart.id:
        target = manager.chart
    if element is None or target is None:
        return _missing(action, element=action.element, target_element=action.target_element)
    store.save_history()
    element.mappings.pop(action.attribute, None)
    _remove_snaps_on(manager, element.id, action.attribute)
    manager.chart.constraints.append(
        Constraint(
            attributes=SnapAttributes(
                element=element.id,
                attribute=action.attribute,
                target_element=action.target_element,
                target_attribute=action.target_attribute,
                gap=action.gap,
            ),
        ),
    )
    target_value = manager.get_object_states(action.target_element)[0].get(action.target_attribute)
    if target_value is not None:
        store.add_presolve_value(
            ConstraintStrength.STRONG,
            element.id,
            action.attribute,
            float(target_value) + action.gap,
        )
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetScaleAttribute)
def set_scale_attribute(store: "ChartStore", action: SetScaleAttribute) -> Optional[bool]:
    scale = _find(store.manager, action.scale, Scale)
    if scale is None:
        return _missing(action, scale=action.scale)
    store.save_history()
    if action.mapping is None:
        scale.mappings.pop(action.attribute, None)
    else:
        scale.mappings[action.attribute] = action.mapping
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(UpdateChartAttribute)
def update_chart_attribute(store: "ChartStore", action: UpdateChartAttribute) -> Optional[bool]:
    store.save_history()
    chart = store.chart
    for attribute, value in action.updates.items():
        store.chart_state.attributes[attribute] = value
        store.add_presolve_value(ConstraintStrength.STRONG, chart.id, attribute, value)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(BindDataToAxis)
def bind_data_to_axis(store: "ChartStore", action: BindDataToAxis) -> Optional[bool]:
    manager = store.manager
    node = _find(manager, action.object, ChartElement)
    if node is None:
        return _missing(action, object=action.object)
    store.save_history()
    properties = node.properties
    binding = AxisDataBinding(
        type="categorical",
        expression=action.expression,
        value_type=action.value_type,
        gap_ratio=0.1,
        visible=True,
        side="default",
        style=copy.deepcopy(DEFAULT_AXIS_STYLE),
    )
    expressions = [action.expression]
    if action.append_to_property:
        entry = {"name": unique_id(), "expression": action.expression}
        if properties.get(action.append_to_property) is None:
            properties[action.append_to_property] = [entry]
        else:
            properties[action.append_to_property].append(entry)
        expressions = [item["expression"] for item in properties[action.append_to_property]]
        if properties.get(action.property) is not None:
            binding = AxisDataBinding.model_validate(properties[action.property])
    group_by = manager.find_group_by(node.id)
    values: List[Any] = []
    for expression in expressions:
        values.extend(manager.get_grouped_expression_vector(action.table, group_by, expression))
    binding = manager.scale_engine.build_axis_binding(binding, values, action.metadata)
    if binding.type == "categorical":
        binding = binding.model_copy(update={"value_type": DataType.STRING})
    properties[action.property] = binding.model_dump(mode="json")
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetChartAttribute)
def set_chart_attribute(store: "ChartStore", action: SetChartAttribute) -> Optional[bool]:
    store.save_history()
    if action.mapping is None:
        store.chart.mappings.pop(action.attribute, None)
    else:
        store.chart.mappings[action.attribute] = action.mapping
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetChartSize)
def set_chart_size(store: "ChartStore", action: SetChartSize) -> Optional[bool]:
    store.save_history()
    store.chart_state.attributes["width"] = action.width
    store.chart_state.attributes["height"] = action.height
    store.chart.mappings["width"] = ValueMapping(value=action.width)
    store.chart.mappings["height"] = ValueMapping(value=action.height)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(SetObjectProperty)
def set_object_property(store: "ChartStore", action: SetObjectProperty) -> Optional[bool]:
    node = store.manager.find_object(action.object)
    if node is None:
        return _missing(action, object=action.object)
    store.save_history()
    if action.field is None:
        node.properties[action.property] = action.value
    else:
        node.properties[action.property] = set_field(node.properties.get(action.property), action.field, action.value)
    if action.no_update_state:
        store.emit(EVENT_GRAPHICS)
    else:
        store.solve_constraints_and_update_graphics(mapping_only=action.no_compute_layout)
    return None


def extension_class_id(extension: str, current_class_id: str) -> str:
    """返回扩展后的绘图区类标识，cartesian-y 保持当前类。"""

    if extension == "cartesian-y":
        return current_class_id
    if extension in EXTENSION_CLASSES:
        return EXTENSION_CLASSES[extension]
    raise ValueError(f"未知的绘图区扩展 {extension}。")


@REGISTRY.add(ExtendPlotSegment)
def extend_plot_segment(store: "ChartStore", action: ExtendPlotSegment) -> Optional[bool]:
    manager = store.manager
    plot_segment = _find(manager, action.plot_segment, PlotSegment)
    if plot_segment is None:
        return _missing(action, plot_segment=action.plot_segment)
    store.save_history()
    new_class_id = extension_class_id(action.extension, plot_segment.class_id)
    if plot_segment.class_id != new_class_id:
        manager.switch_class(plot_segment, new_class_id)
        store.emit(EVENT_STRUCTURE)
    elif action.extension == "cartesian-y":
        plot_segment.properties["yData"] = default_axis_binding()
    else:
        plot_segment.properties["xData"] = default_axis_binding()
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(ReorderGlyphMark)
def reorder_glyph_mark(store: "ChartStore", action: ReorderGlyphMark) -> Optional[bool]:
    glyph = _find(store.manager, action.glyph, Glyph)
    if glyph is None or action.from_index >= len(glyph.marks) or action.to_index > len(glyph.marks):
        return _missing(action, glyph=action.glyph, from_index=action.from_index, to_index=action.to_index)
    store.save_history()
    store.manager.reorder_glyph_element(glyph, action.from_index, action.to_index)
    store.emit(EVENT_STRUCTURE)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(ToggleLegendForScale)
def toggle_legend_for_scale(store: "ChartStore", action: ToggleLegendForScale) -> Optional[bool]:
    if _find(store.manager, action.scale, Scale) is None:
        return _missing(action, scale=action.scale)
    store.save_history()
    store.toggle_legend_for_scale(action.scale)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(ReorderChartElement)
def reorder_chart_element(store: "ChartStore", action: ReorderChartElement) -> Optional[bool]:
    count = len(store.chart.elements)
    if action.from_index >= count or action.to_index > count:
        return _missing(action, from_index=action.from_index, to_index=action.to_index)
    store.save_history()
    store.manager.reorder_chart_element(action.from_index, action.to_index)
    store.emit(EVENT_STRUCTURE)
    store.solve_constraints_and_update_graphics()
    return None


@REGISTRY.add(AddLinks)
def add_links(store: "ChartStore", action: AddLinks) -> Optional[bool]:
    manager = store.manager
    links = action.links.model_copy(deep=True)
    if manager.find_object(links.id) is not None:
        raise ValueError(f"图表中已存在标识 {links.id}。")
    links_cls = get_class(links.class_id)
    store.save_history()
    properties = links_cls.create_properties()
    properties.update(links.properties)
    properties["name"] = manager.find_unused_name("Link")
    links.properties = properties
    manager.add_chart_element(links)
    store.selection = links.id
    # 连线没有需要求解的约束
    store.emit(EVENT_STRUCTURE)
    store.emit(EVENT_GRAPHICS)
    store.emit(EVENT_SELECTION)
    return None


@REGISTRY.add(DeleteChartElement)
def delete_chart_element(store: "ChartStore", action: DeleteChartElement) -> Optional[bool]:
    element = _find_chart_element(store.manager, action.element)
    if element is None:
        return _missing(action, element=action.element)
    store.save_history()
    if store.selection == element.id:
        store.selection = None
        store.emit(EVENT_SELECTION)
    store.manager.remove_chart_element(element)
    store.emit(EVENT_STRUCTURE)
    store.solve_constraints_and_update_graphics()
    return None
