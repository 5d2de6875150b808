# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (the anon key is public by design, user passwords are not).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKDASH_APP_NAME": "App display name (default: taskdash).",
    "TASKDASH_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "TASKDASH_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Backend
    "TASKDASH_BACKEND": "'sqlite' (local single-user, default) or 'rest' (hosted backend).",
    "TASKDASH_TASKS_TABLE": "Task table name (default: tasks).",
    # Hosted backend (TASKDASH_BACKEND=rest)
    "TASKDASH_SUPABASE_URL": "Project URL, e.g. https://xyz.supabase.co (fallback: SUPABASE_URL).",
    "TASKDASH_SUPABASE_ANON_KEY": "Public anon API key (fallback: SUPABASE_ANON_KEY).",
    "TASKDASH_HTTP_TIMEOUT_SECONDS": "HTTP timeout for store/auth calls (default: 10).",
    "TASKDASH_POLL_INTERVAL_SECONDS": "Change polling interval for live updates (default: 3, min 0.5).",
    # Local backend (TASKDASH_BACKEND=sqlite)
    "TASKDASH_DATA_DIR": "Local data directory for logs and the sqlite db (default: .local/taskdash).",
    "TASKDASH_TASKS_DB_PATH": "SQLite path (default: <data_dir>/tasks.sqlite3).",
    "TASKDASH_LOCAL_USER_ID": "Principal id used in local mode (default: local-user).",
    "TASKDASH_LOCAL_USER_EMAIL": "Principal email used in local mode (default: local@localhost).",
}
