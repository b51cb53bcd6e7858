# gunicorn.conf.py
import os

# repositories and reservations live in process memory: keep one worker per catalog
wsgi_app = "ricambi.main:build_app()"
bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = 1
threads = int(os.getenv("WEB_THREADS", "4"))
worker_class = "uvicorn.workers.UvicornWorker"
preload_app = False
timeout = 60
graceful_timeout = 30
keepalive = 5
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
