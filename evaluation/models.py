import secrets

from django.db import models

from .steps import Step, PatientStatus


def generate_access_token():
    """患者访问 token：不可猜测的随机串，作为访问自己记录的唯一凭证"""
    return secrets.token_urlsafe(32)


"""
Patient字段:
id(Django 自动添加)
token(唯一，访问凭证); dni(唯一); name; email; phone; birth_date
procedure; procedure_date; appointment_at(评估完成时预约); status(由步骤记录推导); ledger_version(每次写步骤 +1)
validated_at; validated_by; created_at; updated_at
"""
class Patient(models.Model):
    token = models.CharField(max_length=64, unique=True, default=generate_access_token, editable=False)
    dni = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    birth_date = models.DateField(null=True, blank=True)
    procedure = models.CharField(max_length=200, blank=True)
    procedure_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=PatientStatus.choices,
        default=PatientStatus.PENDING,
        db_index=True,
    )
    ledger_version = models.PositiveIntegerField(default=0)
    appointment_at = models.DateTimeField(null=True, blank=True)
    validated_at = models.DateTimeField(null=True, blank=True)
    validated_by = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.dni})"


"""
StepCompletion字段:
patient (外键 → Patient.id); step; completed_at
(patient, step) 唯一：同一步骤只能记录一次
"""
class StepCompletion(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='step_completions')
    step = models.CharField(max_length=20, choices=Step.choices)
    completed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'step'], name='unique_patient_step'),
        ]

    def __str__(self):
        return f"{self.patient} - {self.step}"


class MessageRole(models.TextChoices):
    PATIENT = "patient", "Paciente"
    ASSISTANT = "assistant", "IA Médica"


class ConversationMessage(models.Model):
    """对话记录：按 created_at 排序，只追加"""
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='messages')
    role = models.CharField(max_length=20, choices=MessageRole.choices)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.role}: {self.content[:40]}"


class Priority(models.TextChoices):
    HIGH = "high", "Alta"
    MEDIUM = "medium", "Media"
    LOW = "low", "Baja"


class Category(models.TextChoices):
    PREOPERATIVE = "preoperatorio", "Preoperatorio"
    ANESTHESIA = "anestesia", "Anestesia"
    MEDICATION = "medicamentos", "Medicamentos"
    RISK = "riesgo", "Riesgo"
    FOLLOW_UP = "seguimiento", "Seguimiento"


class Recommendation(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='recommendations')
    category = models.CharField(max_length=30, choices=Category.choices)
    title = models.CharField(max_length=200)
    description = models.TextField()
    priority = models.CharField(max_length=10, choices=Priority.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"[{self.priority}] {self.title}"


class ConsentType(models.TextChoices):
    DATA_PROCESSING = "data_processing", "Tratamiento de datos"
    PRE_ANESTHETIC = "pre_anesthetic", "Consentimiento pre-anestésico"


"""
ConsentRecord字段:
patient (外键); consent_type; content(签署时展示的文本); accepted; signature_data(签名图片 data URL)
accepted_at; version(每次 upsert +1); created_at; updated_at
(patient, consent_type) 唯一：每种同意书只有一份有效记录
"""
class ConsentRecord(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='consents')
    consent_type = models.CharField(max_length=30, choices=ConsentType.choices)
    content = models.TextField(blank=True)
    accepted = models.BooleanField(default=False)
    signature_data = models.TextField(blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'consent_type'], name='unique_patient_consent_type'),
        ]

    def __str__(self):
        return f"{self.patient} - {self.consent_type} ({'aceptado' if self.accepted else 'pendiente'})"


class QuestionnaireResponse(models.Model):
    """术前问卷：每个患者一份，作为 AI 对话的上下文"""
    patient = models.OneToOneField(Patient, on_delete=models.PROTECT, related_name='questionnaire')
    emergency_contact_name = models.CharField(max_length=200)
    emergency_contact_phone = models.CharField(max_length=30)
    emergency_contact_relationship = models.CharField(max_length=100)
    has_allergies = models.BooleanField(default=False)
    allergies = models.TextField(blank=True)
    current_medications = models.TextField(blank=True)
    medical_history = models.TextField(blank=True)
    previous_surgeries = models.TextField(blank=True)
    family_history = models.TextField(blank=True)
    smoking = models.BooleanField(default=False)
    alcohol = models.BooleanField(default=False)
    exercise = models.TextField(blank=True)
    diet = models.TextField(blank=True)
    sleep_hours = models.PositiveSmallIntegerField(null=True, blank=True)
    stress_level = models.PositiveSmallIntegerField(null=True, blank=True)
    additional_concerns = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cuestionario de {self.patient}"


class SystemPrompt(models.Model):
    """员工维护的系统提示词，按 name 取用"""
    name = models.CharField(max_length=100, unique=True)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class ConversationSummary(models.Model):
    """AI 生成的对话摘要，员工报告使用；重新生成时覆盖"""
    patient = models.OneToOneField(Patient, on_delete=models.PROTECT, related_name='summary')
    summary = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Resumen de {self.patient}"
