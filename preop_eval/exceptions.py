"""
统一错误处理：BaseAppException 及子类
所有异常格式：type, code, message, detail, http_status
"""


class BaseAppException(Exception):
    """基类：统一错误格式"""
    type = "error"
    code = "UNKNOWN"
    message = "Unknown error"
    http_status = 400

    def __init__(self, message=None, code=None, detail=None, http_status=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.code = code or self.code
        self.detail = detail if detail is not None else {}
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self):
        return {
            "success": False,
            "type": self.type,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class ValidationError(BaseAppException):
    """验证错误：输入格式不对，由 serializer / store 边界检查"""
    type = "validation"
    code = "VALIDATION_ERROR"
    message = "Datos inválidos"
    http_status = 400


class BlockError(BaseAppException):
    """业务阻止：业务规则不允许"""
    type = "block"
    code = "BLOCK"
    message = "Operación no permitida"
    http_status = 409


class WarningException(BaseAppException):
    """业务警告：可能有问题，允许用户确认后继续"""
    type = "warning"
    code = "WARNING"
    message = "Confirme para continuar"
    http_status = 200


class InvalidTransition(BlockError):
    """流程步骤不可达：目标步骤尚未解锁，或流程已结束"""
    code = "INVALID_TRANSITION"
    message = "Este paso del proceso no está disponible"


class ContentNotReady(BlockError):
    """内容未就绪：对话尚未生成任何建议"""
    code = "CONTENT_NOT_READY"
    message = "La evaluación con IA aún no se ha completado"


class StaleWrite(BlockError):
    """并发写冲突：expected_version 与数据库不一致"""
    code = "STALE_WRITE"
    message = "Los datos fueron modificados por otra sesión, recargue e intente nuevamente"


class PatientNotFound(BaseAppException):
    """token 无效或已过期：会话终止，需要重新验证身份"""
    type = "not_found"
    code = "PATIENT_NOT_FOUND"
    message = "No se encontró un paciente con este enlace"
    http_status = 404


class TransientIO(BaseAppException):
    """存储或 AI 调用失败：可由用户手动重试"""
    type = "transient"
    code = "TRANSIENT_IO"
    message = "Error temporal, intente nuevamente"
    http_status = 503
