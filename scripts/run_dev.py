#!/usr/bin/env python3
"""
Development server for the dashboard-sql API.

Loads .env from the project root, then starts uvicorn with hot reload
using the values under SERVER__* in settings.
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
    print(f"⚠ No .env file at {env_file}")
    print("  ClickHouse and OpenRouter stay disconnected until CLICKHOUSE__* and LLM__* are set")


if __name__ == "__main__":
    import uvicorn
    from dashboard_sql.config import get_settings

    server = get_settings().server
    base_url = f"http://{server.host}:{server.port}"

    print("🚀 Starting dashboard-sql development server...")
    print(f"📊 Docs:   {base_url}/docs")
    print(f"🔍 Health: {base_url}/health")
    print(f"💬 Chat:   POST {base_url}/api/chat")
    print()

    uvicorn.run(
        server.app_module,
        host=server.host,
        port=server.port,
        reload=server.reload,
        workers=server.workers,
        reload_dirs=[str(src_path)],
        log_config=None,  # structlog owns the output
        access_log=False  # logging_middleware logs every request
    )
