"""
工厂函数：根据来源返回对应 Adapter
新增数据源时在此注册，业务代码无需修改
"""
from typing import Dict, Type

from .adapters import BaseRosterAdapter, CsvRosterAdapter, JsonRosterAdapter

# 来源标识 -> Adapter 类
_ADAPTER_REGISTRY: Dict[str, Type[BaseRosterAdapter]] = {
    "json": JsonRosterAdapter,
    "csv": CsvRosterAdapter,
    "spreadsheet": CsvRosterAdapter,  # 别名
}


def get_adapter(source: str) -> BaseRosterAdapter:
    """
    根据来源返回对应的 Adapter 实例
    source: 如 "json", "csv"
    """
    adapter_cls = _ADAPTER_REGISTRY.get((source or "").lower())
    if adapter_cls is None:
        raise ValueError(f"Unknown roster source: {source}. Known: {list(_ADAPTER_REGISTRY.keys())}")
    return adapter_cls()
