import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-dev-key-change-in-production')
DEBUG = os.getenv('DJANGO_DEBUG', '1') == '1'
ALLOWED_HOSTS = os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'evaluation',
]

MIDDLEWARE = [
    'evaluation.middleware_metrics.MetricsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'preop_eval.middleware.AppExceptionMiddleware',
]

ROOT_URLCONF = 'preop_eval.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'preop_eval.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('POSTGRES_DB', 'preop_db'),
        'USER': os.getenv('POSTGRES_USER', 'preop_user'),
        'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'preop_pass'),
        'HOST': os.getenv('POSTGRES_HOST', 'db'),
        'PORT': os.getenv('POSTGRES_PORT', '5432'),
    }
}

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'es-es'
TIME_ZONE = 'Europe/Madrid'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# 日志：console 输出，evaluation 模块单独控制级别
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'evaluation': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
    },
}

# LLM 配置：LLM_PROVIDER=openai/claude；USE_MOCK_LLM=1 时不调真实 LLM
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'openai')
USE_MOCK_LLM = os.getenv('USE_MOCK_LLM', '1') == '1'
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
CLAUDE_MODEL = os.getenv('CLAUDE_MODEL', 'claude-3-5-sonnet-20241022')

# 对话中患者发言达到该轮数后，mock LLM 才生成建议
MOCK_RECOMMENDATION_TURNS = int(os.getenv('MOCK_RECOMMENDATION_TURNS', '3'))

# SMS 网关（HTTP POST: phoneNumber, message, patientName）
SMS_GATEWAY_URL = os.getenv('SMS_GATEWAY_URL', '')
SMS_TIMEOUT_SECONDS = float(os.getenv('SMS_TIMEOUT_SECONDS', '10'))

# 患者访问入口，用于短信链接
FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

# 完成评估后预约：N 天后的 HH 点
APPOINTMENT_DAYS_AHEAD = int(os.getenv('APPOINTMENT_DAYS_AHEAD', '7'))
APPOINTMENT_HOUR = int(os.getenv('APPOINTMENT_HOUR', '9'))

# Redis（Celery broker + result backend）
REDIS_HOST = os.getenv('REDIS_HOST', 'redis')
REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
REDIS_URL = f'redis://{REDIS_HOST}:{REDIS_PORT}/0'

# Celery
CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = REDIS_URL

# StatsD（Worker 指标，经 statsd_exporter 转给 Prometheus）
STATSD_HOST = os.getenv('STATSD_HOST', 'statsd_exporter')
STATSD_PORT = int(os.getenv('STATSD_PORT', '9125'))
