"""
Gunicorn settings for `gunicorn -c gunicorn.conf.py run:app`.

Ledger writes are short transactions, so the sync worker is enough; scale
with GUNICORN_WORKERS rather than threads.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
timeout = int(os.getenv('GUNICORN_TIMEOUT', '30'))

accesslog = '-'
loglevel = os.getenv('LOG_LEVEL', 'info')
