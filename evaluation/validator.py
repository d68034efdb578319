"""
步骤校验（Step Validator）：无状态的策略判断
validate(token, target_step) -> StepValidation(allowed, reason)
"""
from dataclasses import dataclass
from typing import Optional

from . import ledger
from .steps import (
    FROZEN_REASON,
    STEP_BLOCKED_REASONS,
    Step,
    parse_step,
    step_index,
)
from .store import PatientStore


@dataclass(frozen=True)
class StepValidation:
    allowed: bool
    current_step: Step
    target_step: Step
    reason: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "allowed": self.allowed,
            "current_step": self.current_step.value,
            "target_step": self.target_step.value,
        }
        if not self.allowed:
            data["reason"] = self.reason
            data["code"] = self.code
        return data


def validate(token, target_step, *, store=None) -> StepValidation:
    """
    - 未知 token 抛 PatientNotFound（由 ledger 抛出），不会默认到第一步
    - completed 已记录：只允许 completed
    - 目标步骤 <= 当前步骤：允许；否则拒绝
    - 目标在 recommendations 及之后：至少要有一条建议（内容就绪门槛）
    """
    target = parse_step(target_step)
    current, frozen = ledger.progress(token)

    if frozen:
        if target == Step.COMPLETED:
            return StepValidation(True, current, target)
        return StepValidation(False, current, target, FROZEN_REASON, "INVALID_TRANSITION")

    if step_index(target) > step_index(current):
        return StepValidation(
            False, current, target, STEP_BLOCKED_REASONS[target], "INVALID_TRANSITION"
        )

    if step_index(target) >= step_index(Step.RECOMMENDATIONS):
        store = store or PatientStore()
        if not store.has_recommendations(token):
            return StepValidation(
                False,
                current,
                target,
                STEP_BLOCKED_REASONS[Step.RECOMMENDATIONS],
                "CONTENT_NOT_READY",
            )

    return StepValidation(True, current, target)
