import os

env = os.getenv("DJANGO_ENV", "local").lower()

if env == "prod":
    from .prod import *  # noqa
elif env != "test":
    from .local import *  # noqa
