import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


# Run with: gunicorn -c gunicorn.conf.py "sla_tracker:create_app()"
bind = f"0.0.0.0:{_env_int('PORT', 5003)}"

# One shared clock per worker process; SSE streams each hold a thread.
workers = max(1, _env_int("WEB_CONCURRENCY", 1))
threads = max(1, _env_int("PYTHON_THREADS", 16))
worker_class = "gthread"

# Streams outlive a normal request; the timeout only guards stuck workers.
timeout = max(10, _env_int("GUNICORN_TIMEOUT", 120))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 5))

accesslog = "-"
errorlog = "-"

max_requests = max(0, _env_int("GUNICORN_MAX_REQUESTS", 0))
max_requests_jitter = max(0, _env_int("GUNICORN_MAX_REQUESTS_JITTER", 0))
