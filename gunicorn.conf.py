"""
Gunicorn configuration for production deployment.

Usage:
    gunicorn -c gunicorn.conf.py wsgi:app

The rate-limit counters and the challenge table live in process memory
by default, so one process serves all requests and concurrency comes
from threads. Running several workers (or several hosts) requires
RATELIMIT_STORAGE_URI pointing at a shared `limits` backend, and a
shared challenge store.
"""

import os

# --- Bind ---
bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:8000')

# --- Workers ---
workers = int(os.environ.get('GUNICORN_WORKERS', '1'))
worker_class = 'gthread'
# Request handlers are short and CPU-bound apart from bcrypt and siteverify.
threads = int(os.environ.get('GUNICORN_THREADS', '8'))

# --- Timeouts ---
# siteverify is bounded by RECAPTCHA_TIMEOUT (5s); 30s leaves headroom.
timeout = 30
graceful_timeout = 10
keepalive = 2

# --- Worker Recycling ---
# Recycling drops in-memory counters and challenges; keep it rare.
max_requests = 10000
max_requests_jitter = 500

# --- Request Limits ---
limit_request_line = 8190
limit_request_fields = 50
limit_request_field_size = 8190

# --- Server Identity ---
server_software = ''

# --- Logging ---
# Excludes request bodies, cookies and Authorization headers: tokens never reach the log.
accesslog = '-'
errorlog = '-'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" %(L)s'
loglevel = os.environ.get('LOG_LEVEL', 'info')

proc_name = 'gatekeeper'

# --- Forwarded Headers ---
# Only trust X-Forwarded-* from the reverse proxy (see PROXY_COUNT).
forwarded_allow_ips = os.environ.get('FORWARDED_ALLOW_IPS', '127.0.0.1')
