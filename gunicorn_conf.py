from fieldforms.config import settings

# Server socket
bind = f"{settings.HOST}:{settings.PORT}"
backlog = 2048

# Worker processes
workers = settings.WORKERS
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
# Submissions can wait on SQLite's busy timeout; leave headroom above it
timeout = max(30, int(settings.SQLITE_BUSY_TIMEOUT) * 2)
keepalive = 2

# Logging
accesslog = "-"
errorlog = "-"
loglevel = settings.get_log_level().lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "field_forms_engine"

# Server mechanics
daemon = False
pidfile = None
umask = 0
user = None
group = None
