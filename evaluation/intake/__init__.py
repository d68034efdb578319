"""
名单导入：Adapter 模式
将不同来源（JSON 接口、表格导出的 CSV）统一转换为 Roster，
业务逻辑只认识 Roster，新增来源只需新增 Adapter。
"""
from .types import Roster, PatientInfo
from .adapters import BaseRosterAdapter
from .factory import get_adapter

__all__ = [
    "Roster",
    "PatientInfo",
    "BaseRosterAdapter",
    "get_adapter",
]
