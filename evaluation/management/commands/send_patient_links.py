"""
批量发送访问链接短信（名单导入时未发送，或需要重发）
运行: python manage.py send_patient_links [--status Pendientes] [--dni 12345678 ...]
"""
from django.core.management.base import BaseCommand, CommandError

from evaluation.models import Patient
from evaluation.steps import PatientStatus
from evaluation.tasks import send_patient_link_task


class Command(BaseCommand):
    help = '为患者投递访问链接短信任务'

    def add_arguments(self, parser):
        parser.add_argument(
            '--status',
            default=PatientStatus.PENDING,
            help='只发送给该状态的患者（默认 Pendientes）',
        )
        parser.add_argument('--dni', nargs='*', default=None, help='只发送给这些 DNI')

    def handle(self, *args, **options):
        status = options['status']
        if status not in PatientStatus.values:
            raise CommandError(f'Estado inválido: {status}. Opciones: {list(PatientStatus.values)}')

        queryset = Patient.objects.filter(status=status).order_by('id')
        if options['dni']:
            queryset = queryset.filter(dni__in=options['dni'])

        queued = skipped = 0
        for patient in queryset:
            if not patient.phone:
                self.stdout.write(f'Sin teléfono, se omite: {patient.name} ({patient.dni})')
                skipped += 1
                continue
            send_patient_link_task.delay(patient.id)
            queued += 1

        self.stdout.write(self.style.SUCCESS(f'{queued} SMS en cola, {skipped} omitidos'))
