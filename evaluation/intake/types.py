"""
内部标准格式：业务逻辑唯一认识的格式
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass
class PatientInfo:
    """名单中的一位患者（内部标准）"""
    dni: str
    name: str
    email: str = ""
    phone: str = ""
    birth_date: str = ""  # YYYY-MM-DD，可为空
    procedure: str = ""
    procedure_date: str = ""  # YYYY-MM-DD，可为空

    def to_model_fields(self) -> dict:
        """转换为 Patient 建模字段；空日期为 None"""
        return {
            "dni": self.dni,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "birth_date": date.fromisoformat(self.birth_date) if self.birth_date else None,
            "procedure": self.procedure,
            "procedure_date": date.fromisoformat(self.procedure_date) if self.procedure_date else None,
        }


@dataclass
class Roster:
    """
    一次导入的名单
    业务逻辑（import_roster）只认识此格式
    """
    patients: list[PatientInfo]
    source: str  # 数据来源标识，如 "json", "csv"
    confirm: bool = False
    send_links: bool = True
    raw_data: Any = field(default=None, repr=False)  # 保留原始数据用于排查
