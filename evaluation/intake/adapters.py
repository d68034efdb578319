"""
名单 Adapter：解析、转换、校验
"""
import csv
import io
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from preop_eval.exceptions import ValidationError

from .types import PatientInfo, Roster

# 与 serializers 一致的格式校验
_DNI_PATTERN = re.compile(r"^[0-9]{7,8}[A-Za-z]?$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# 表格导出的日期常见为 DD/MM/YYYY
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")


def normalize_date(value) -> str:
    """各种日期写法 → YYYY-MM-DD；无法识别时原样返回，由 validate 报错"""
    s = str(value or "").strip()
    if not s:
        return ""
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s[:10], fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return s


class BaseRosterAdapter(ABC):
    """
    抽象基类：所有名单 Adapter 的父类
    新增来源时只需继承此类并实现 parse/transform
    """

    source_id: str = "unknown"  # 子类覆盖，如 "json", "csv"

    def process(self, raw: bytes | str, source: str | None = None) -> Roster:
        """
        完整流程：parse -> transform -> validate
        返回 Roster，失败时抛出 ValidationError
        """
        parsed = self.parse(raw)
        roster = self.transform(parsed)
        self.validate(roster)
        roster.source = source or self.source_id
        roster.raw_data = raw
        return roster

    @abstractmethod
    def parse(self, raw: bytes | str) -> Any:
        """
        解析原始数据为 Python 结构
        解析失败时抛出 ValidationError
        """
        pass

    @abstractmethod
    def transform(self, parsed: Any) -> Roster:
        pass

    def validate(self, roster: Roster) -> None:
        """
        DNI 7-8 位数字（可带一位字母）、姓名必填、邮箱格式、日期合法
        所有行的错误汇总后一次性抛出
        """
        if not roster.patients:
            raise ValidationError(
                message="El archivo no contiene pacientes",
                code="EMPTY_ROSTER",
            )
        errors = []
        for index, info in enumerate(roster.patients):
            prefix = f"patients[{index}]"
            if not info.dni or not _DNI_PATTERN.match(info.dni):
                errors.append({"field": f"{prefix}.dni", "message": "El DNI debe tener 7 u 8 dígitos"})
            if not info.name:
                errors.append({"field": f"{prefix}.name", "message": "El nombre es obligatorio"})
            if info.email and not _EMAIL_PATTERN.match(info.email):
                errors.append({"field": f"{prefix}.email", "message": "Email inválido"})
            for name in ("birth_date", "procedure_date"):
                value = getattr(info, name)
                if not value:
                    continue
                try:
                    datetime.strptime(value, "%Y-%m-%d")
                except ValueError:
                    errors.append({"field": f"{prefix}.{name}", "message": "Fecha inválida (YYYY-MM-DD)"})
        if errors:
            raise ValidationError(
                message="Datos del listado inválidos",
                code="VALIDATION_ERROR",
                detail={"errors": errors},
            )


class JsonRosterAdapter(BaseRosterAdapter):
    """
    JSON 接口格式
    {"patients": [{dni, name, email, phone, birth_date, procedure, procedure_date}], "confirm": bool}
    也接受顶层直接为列表；birthDate / procedureDate 驼峰写法兼容前端
    """

    source_id = "json"

    def parse(self, raw: bytes | str) -> Any:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(
                message="Invalid JSON format",
                code="INVALID_JSON",
                detail={"error": str(e)},
            )
        if not isinstance(parsed, (dict, list)):
            raise ValidationError(message="Invalid JSON format", code="INVALID_JSON")
        return parsed

    def transform(self, parsed: Any) -> Roster:
        if isinstance(parsed, list):
            rows, flags = parsed, {}
        else:
            rows, flags = parsed.get("patients") or [], parsed
        if not isinstance(rows, list):
            raise ValidationError(message="'patients' debe ser una lista", code="INVALID_JSON")

        patients = []
        for row in rows:
            if not isinstance(row, dict):
                raise ValidationError(message="Cada paciente debe ser un objeto", code="INVALID_JSON")
            patients.append(
                PatientInfo(
                    dni=str(row.get("dni", "")).strip().upper(),
                    name=str(row.get("name", "")).strip(),
                    email=str(row.get("email") or "").strip(),
                    phone=str(row.get("phone") or "").strip(),
                    birth_date=normalize_date(row.get("birth_date") or row.get("birthDate")),
                    procedure=str(row.get("procedure") or "").strip(),
                    procedure_date=normalize_date(row.get("procedure_date") or row.get("procedureDate")),
                )
            )
        return Roster(
            patients=patients,
            source=self.source_id,
            confirm=flags.get("confirm") is True,
            send_links=flags.get("send_links", True) is not False,
        )


class CsvRosterAdapter(BaseRosterAdapter):
    """
    表格导出的 CSV（第一行为表头）
    列：DNI, Nombre, Email, Teléfono, Fecha Nacimiento, Procedimiento, Fecha Procedimiento
    姓名和 DNI 都为空的行视为空行跳过
    """

    source_id = "csv"

    _COLUMNS = {
        "dni": "dni",
        "nombre": "name",
        "name": "name",
        "email": "email",
        "correo": "email",
        "teléfono": "phone",
        "telefono": "phone",
        "phone": "phone",
        "fecha nacimiento": "birth_date",
        "fecha de nacimiento": "birth_date",
        "birth_date": "birth_date",
        "procedimiento": "procedure",
        "procedure": "procedure",
        "fecha procedimiento": "procedure_date",
        "fecha cirugía": "procedure_date",
        "procedure_date": "procedure_date",
    }

    def parse(self, raw: bytes | str) -> list[dict]:
        if isinstance(raw, bytes):
            # Excel 导出的 CSV 常带 BOM
            raw = raw.decode("utf-8-sig")
        # 西语地区的 Excel 默认用分号分隔
        header_line = raw.split("\n", 1)[0]
        delimiter = ";" if header_line.count(";") > header_line.count(",") else ","
        try:
            reader = csv.DictReader(io.StringIO(raw), delimiter=delimiter)
            rows = list(reader)
        except csv.Error as e:
            raise ValidationError(
                message="Invalid CSV format",
                code="INVALID_CSV",
                detail={"error": str(e)},
            )
        headers = [self._COLUMNS.get((h or "").strip().lower()) for h in reader.fieldnames or []]
        if "dni" not in headers or "name" not in headers:
            raise ValidationError(
                message="El CSV debe incluir las columnas DNI y Nombre",
                code="INVALID_CSV",
                detail={"columns": reader.fieldnames or []},
            )
        return rows

    def transform(self, parsed: list[dict]) -> Roster:
        patients = []
        for row in parsed:
            values = {}
            for header, value in row.items():
                field_name = self._COLUMNS.get((header or "").strip().lower())
                if field_name:
                    values[field_name] = (value or "").strip()
            if not values.get("dni") and not values.get("name"):
                continue
            patients.append(
                PatientInfo(
                    dni=values.get("dni", "").upper(),
                    name=values.get("name", ""),
                    email=values.get("email", ""),
                    phone=values.get("phone", ""),
                    birth_date=normalize_date(values.get("birth_date")),
                    procedure=values.get("procedure", ""),
                    procedure_date=normalize_date(values.get("procedure_date")),
                )
            )
        return Roster(patients=patients, source=self.source_id)
