"""
存储边界的结构化记录：业务逻辑只认识这些类型，不直接处理自由格式 dict
必填字段在构造时校验，失败抛 ValidationError
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from preop_eval.exceptions import ValidationError

from .models import MessageRole, Priority, Category

# AI 工具调用返回西语优先级，统一转换为 high/medium/low
_PRIORITY_ALIASES = {
    "alta": Priority.HIGH,
    "high": Priority.HIGH,
    "media": Priority.MEDIUM,
    "medium": Priority.MEDIUM,
    "baja": Priority.LOW,
    "low": Priority.LOW,
}


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


@dataclass(frozen=True)
class ConversationEntry:
    """一条对话：role 为 patient 或 assistant"""
    role: str
    content: str
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.role not in MessageRole.values:
            raise ValidationError(
                message="Rol de mensaje inválido",
                code="INVALID_MESSAGE_ROLE",
                detail={"role": self.role, "allowed": list(MessageRole.values)},
            )
        if not self.content or not self.content.strip():
            raise ValidationError(
                message="El mensaje no puede estar vacío",
                code="EMPTY_MESSAGE",
            )

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class RecommendationData:
    """一条建议（内部标准）"""
    category: str
    title: str
    description: str
    priority: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: Any) -> "RecommendationData":
        """
        从 AI / 员工提交的 dict 构造，校验所有字段
        错误汇总后一次性抛出
        """
        if not isinstance(data, dict):
            raise ValidationError(
                message="Cada recomendación debe ser un objeto",
                code="INVALID_RECOMMENDATION",
            )
        errors = []
        title = _clean(data.get("title"))
        description = _clean(data.get("description"))
        category = _clean(data.get("category")).lower()
        priority = _PRIORITY_ALIASES.get(_clean(data.get("priority")).lower())

        if not title:
            errors.append({"field": "title", "message": "El título es obligatorio"})
        if not description:
            errors.append({"field": "description", "message": "La descripción es obligatoria"})
        if category not in Category.values:
            errors.append({"field": "category", "message": f"Categoría inválida: {category or '(vacía)'}"})
        if priority is None:
            errors.append({"field": "priority", "message": "La prioridad debe ser high, medium o low"})
        if errors:
            raise ValidationError(
                message="Recomendación inválida",
                code="INVALID_RECOMMENDATION",
                detail={"errors": errors},
            )
        return cls(category=category, title=title, description=description, priority=str(priority))

    @classmethod
    def from_model(cls, rec) -> "RecommendationData":
        return cls(
            id=rec.id,
            category=rec.category,
            title=rec.title,
            description=rec.description,
            priority=rec.priority,
            created_at=rec.created_at,
        )

    def key(self) -> tuple:
        """比较内容是否相同（忽略 id / 时间）"""
        return (self.category, self.title, self.description, self.priority)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ConsentData:
    consent_type: str
    accepted: bool
    signature_data: str = field(default="", repr=False)
    accepted_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def from_model(cls, consent) -> "ConsentData":
        return cls(
            consent_type=consent.consent_type,
            accepted=consent.accepted,
            signature_data=consent.signature_data,
            accepted_at=consent.accepted_at,
            version=consent.version,
        )

    def to_dict(self) -> dict:
        return {
            "consent_type": self.consent_type,
            "accepted": self.accepted,
            "has_signature": bool(self.signature_data),
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "version": self.version,
        }
