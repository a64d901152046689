import os

# Must be set before slots_be.config is imported: the configuration is
# validated at import time and would refuse to start as production.
os.environ.setdefault('TESTING', 'True')
os.environ.setdefault('FLASK_ENV', 'development')
os.environ.setdefault('JWT_SECRET_KEY', 'test-jwt-secret-key-with-enough-length-for-hs256')
os.environ.setdefault('LIGHTNING_BACKEND', 'lnbits')
