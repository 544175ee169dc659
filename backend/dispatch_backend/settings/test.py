from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CHANNEL_LAYERS = {
    "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

GOOGLE_MAPS_API_KEY = "test-key"
DISPATCH_RUN_INLINE = True
LOG_LEVEL = "WARNING"
LOGGING['root']['level'] = LOG_LEVEL
