# config/settings/test.py
from .base import *  # noqa

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# appends run inline so tests can assert on them
AUDIT_ASYNC_DISPATCH = False
AUDIT_STORE_USE_DB = True

# caplog listens on the root logger
LOGGING["loggers"]["lab_core"]["propagate"] = True

# queued audit appends run in-process
CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
