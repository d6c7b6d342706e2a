#!/usr/bin/env python3
"""
Production server for the dashboard-sql API.

Same settings as run_dev.py with reload disabled, at least two workers and
the Server/Date response headers switched off.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
    print(f"✓ Loaded environment from {env_file}")
else:
    print(f"⚠ No .env file at {env_file}; expecting variables from the deployment environment")


if __name__ == "__main__":
    import uvicorn
    from dashboard_sql.config import get_settings

    server = get_settings().server

    production_config = {
        "app": server.app_module,
        "host": server.host,
        "port": server.port,
        "workers": max(server.workers, 2),
        "reload": False,
        "log_config": None,
        "access_log": False,
        "server_header": False,
        "date_header": False,
    }

    print("🚀 Starting dashboard-sql production server...")
    print(f"🌐 Listening: {server.host}:{server.port} ({production_config['workers']} workers)")
    print()

    uvicorn.run(**production_config)
