import multiprocessing
import os

# Gunicorn config
bind = os.environ.get("BIND", "0.0.0.0:8000")  # Match this port in your ALB target group
# In-process rate limiting is per worker; run more than one worker only with REDIS_URL set
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() if os.environ.get("REDIS_URL") else 1))
worker_class = "uvicorn.workers.UvicornWorker"
loglevel = "info"
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "-")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "-")
