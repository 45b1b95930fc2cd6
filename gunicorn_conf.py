import multiprocessing
import os

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "8000")
bind_env = os.getenv("BIND", None)
bind = bind_env if bind_env else f"{host}:{port}"

web_concurrency_str = os.getenv("WEB_CONCURRENCY", None)
max_workers_str = os.getenv("MAX_WORKERS")

if web_concurrency_str:
    workers = int(web_concurrency_str)
    assert workers > 0
else:
    # Each worker holds its own asyncpg pool, so stay well under the database's connection limit
    workers = max(multiprocessing.cpu_count(), 2)
    if max_workers_str:
        workers = min(workers, int(max_workers_str))

worker_class = "uvicorn.workers.UvicornWorker"
# Agentic answers make two completion calls; allow for slow local models
timeout = int(os.getenv("WORKER_TIMEOUT", "300"))
graceful_timeout = int(os.getenv("GRACEFUL_TIMEOUT", "30"))
keepalive = 120
loglevel = os.getenv("LOG_LEVEL", "info").lower()
errorlog = "-"
accesslog = "-"
