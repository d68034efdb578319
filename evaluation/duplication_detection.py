"""
名单导入的重复检测
- 同一批名单内 DNI 重复 → 必须阻止 (BlockError)
- DNI 已存在 + 姓名相同 → 复用现有患者
- DNI 已存在 + 姓名不同 → 警告 (WarningException)；confirm 则复用现有
- 姓名 + 出生日期相同 + DNI 不同 → 警告；confirm 则创建新患者
"""
from collections import Counter
from datetime import date, datetime

from preop_eval.exceptions import BlockError, WarningException

from .models import Patient


def _parse_date(value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.strptime(value[:10], '%Y-%m-%d').date()
    return None


def _same_name(a, b):
    return " ".join((a or "").lower().split()) == " ".join((b or "").lower().split())


def check_roster(patients):
    """同一批名单内 DNI 重复 → 抛出 BlockError (409)"""
    counts = Counter(info.dni for info in patients)
    repeated = sorted(dni for dni, n in counts.items() if n > 1)
    if repeated:
        raise BlockError(
            message="El listado contiene DNI repetidos",
            code="ROSTER_DUPLICATE_DNI",
            detail={"dni": repeated},
        )


def check_patient(info, confirm=False):
    """
    返回应复用的现有患者；返回 None 表示需要新建
    警告中带上 DNI，便于员工在批量导入里定位
    """
    existing = Patient.objects.filter(dni=info.dni).first()
    if existing:
        if _same_name(existing.name, info.name):
            return existing
        if not confirm:
            raise WarningException(
                message="El DNI ya existe con otro nombre, confirme para continuar",
                code="PATIENT_DNI_NAME_MISMATCH",
                detail={"dni": info.dni, "existing_name": existing.name, "new_name": info.name},
            )
        return existing

    birth_date = _parse_date(info.birth_date)
    if birth_date is not None:
        twins = Patient.objects.filter(birth_date=birth_date).exclude(dni=info.dni)
        if any(_same_name(p.name, info.name) for p in twins) and not confirm:
            raise WarningException(
                message="Ya existe un paciente con el mismo nombre y fecha de nacimiento, confirme para continuar",
                code="PATIENT_NAME_DOB_DUPLICATE",
                detail={"dni": info.dni, "name": info.name},
            )
    return None
