"""Gunicorn configuration file.

Secrets are read by app.config.settings (``/run/secrets`` first, then the
environment); this file only reports which source a worker will see.
"""
import os

wsgi_app = "app.flask_app:create_app()"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "60"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    """
    Called just after a worker has been forked.
    
    Logs whether Docker secrets are mounted so a misconfigured deployment is
    visible before the first request fails.
    """
    from pathlib import Path
    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets")
            return
    
    if not os.environ.get("SUPABASE_SERVICE_ROLE_KEY"):
        demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
        if demo_mode:
            worker.log.warning("No Supabase service role key configured; demo key in use")
        else:
            worker.log.error("SUPABASE_SERVICE_ROLE_KEY missing from /run/secrets and environment")
