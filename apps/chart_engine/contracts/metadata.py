"""契约基类与 JSONSchema 元数据。

导出的每份 Schema 都带有 ``$id``、``$schema`` 与 ``version``，所有对象节点
（包括 ``$defs`` 中的嵌套定义）都写明 ``additionalProperties: false``，与
运行期 ``extra="forbid"`` 的行为一致。
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

SCHEMA_VERSION: str = "1.0.0"
"""图表规范与状态契约的版本号，序列化时写入 ``schema_version``。"""

SCHEMA_BASE_URI: str = "https://schemas.chart-engine.local/contracts"

JSON_SCHEMA_DIALECT: str = "https://json-schema.org/draft/2020-12/schema"


def schema_id(schema_name: str) -> str:
    return f"{SCHEMA_BASE_URI}/{schema_name}.json"


def contract_schema_metadata(schema_name: str) -> dict[str, str]:
    """返回合并进顶层 Schema 的元数据。

    Parameters
    ----------
    schema_name: str
        契约名称，决定 ``$id`` 的文件名部分。

    Returns
    -------
    dict[str, str]
        ``$id``、``$schema`` 与 ``version`` 三个键。
    """

    return {
        "$id": schema_id(schema_name),
        "$schema": JSON_SCHEMA_DIALECT,
        "version": SCHEMA_VERSION,
    }


def _forbid_additional_properties(schema: dict[str, Any]) -> None:
    # 只处理模型节点，字典字段保持开放
    if schema.get("type") == "object" and "additionalProperties" not in schema:
        schema["additionalProperties"] = False
    for definition in schema.get("$defs", {}).values():
        _forbid_additional_properties(definition)


class ContractModel(BaseModel):
    """契约模型基类：禁止额外字段，导出 Schema 时注入元数据。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        raise NotImplementedError(f"{cls.__name__} 未声明 schema_name()。")

    @classmethod
    def model_json_schema(cls, *args: Any, **kwargs: Any) -> dict[str, Any]:
        schema = super().model_json_schema(*args, **kwargs)
        _forbid_additional_properties(schema)
        schema.update(contract_schema_metadata(cls.schema_name()))
        return schema
