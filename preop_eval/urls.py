from django.contrib import admin
from django.urls import path

from evaluation import views

"""
- urlpatterns = [path(), path()...] -> 这里放所有path
- 患者端以 token 访问自己的记录；员工端在 /api/admin/ 下
"""
urlpatterns = [
    path('admin/', admin.site.urls),
    path('metrics', views.metrics, name='metrics'),

    # 患者端
    path('api/verify/', views.verify, name='verify'),
    path('api/patients/<str:token>/', views.patient_state, name='patient_state'),
    path('api/patients/<str:token>/step/', views.current_step, name='current_step'),
    path('api/patients/<str:token>/validate-step/', views.validate_step, name='validate_step'),
    path('api/patients/<str:token>/process-step/', views.process_step, name='process_step'),
    path('api/patients/<str:token>/questionnaire/', views.questionnaire, name='questionnaire'),
    path('api/patients/<str:token>/data-consent/', views.data_consent, name='data_consent'),
    path('api/patients/<str:token>/chat/', views.chat, name='chat'),
    path('api/patients/<str:token>/chat/finish/', views.finish_chat, name='finish_chat'),
    path('api/patients/<str:token>/recommendations/', views.recommendations, name='recommendations'),
    path(
        'api/patients/<str:token>/recommendations/acknowledge/',
        views.acknowledge_recommendations,
        name='acknowledge_recommendations',
    ),
    path('api/patients/<str:token>/consent/', views.informed_consent, name='informed_consent'),

    # 员工端
    path('api/admin/patients/', views.patient_list, name='patient_list'),
    path('api/admin/patients/import/', views.import_patients, name='import_patients'),
    path('api/admin/patients/<str:token>/status/', views.patient_status, name='patient_status'),
    path('api/admin/patients/<str:token>/validate/', views.validate_evaluation, name='validate_evaluation'),
    path('api/admin/patients/<str:token>/report/', views.patient_report, name='patient_report'),
    path(
        'api/admin/patients/<str:token>/recommendations/',
        views.admin_recommendations,
        name='admin_recommendations',
    ),
    path('api/admin/system-prompts/', views.system_prompts, name='system_prompts'),
]
