"""Store 层导出。"""

from apps.chart_engine.stores.dataset_store import DatasetStore, RowGroup, group_key, table_from_dataframe

__all__ = [
    "DatasetStore",
    "RowGroup",
    "group_key",
    "table_from_dataframe",
]
