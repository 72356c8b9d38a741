"""
Django settings for running Toolman's test suite.
"""

SECRET_KEY = 'toolman-tests-not-secret'

INSTALLED_APPS = [
    'toolman',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    },
}

USE_TZ = True
TIME_ZONE = 'UTC'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

TOOLMAN = {
    "STORE": "toolman.adapters.django_store.DjangoStore",
    "NOTIFICATION_SINK": "toolman.adapters.notifications.LoggingNotificationSink",
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {'class': 'logging.NullHandler'},
    },
    'loggers': {
        'toolman': {'handlers': ['null'], 'level': 'DEBUG'},
    },
}
