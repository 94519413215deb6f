#!/usr/bin/env python3
"""
Launcher for the CRM API.

Server settings come from the environment:
    HOST        interface to bind (default 0.0.0.0)
    PORT        port to listen on (default 8000)
    RELOAD      restart on code changes, "true" or "false" (default false)
    LOG_LEVEL   uvicorn log level (default info)
"""
import os
import sys
import traceback
import uvicorn

APP = "crm.main:app"

def server_options(environ=os.environ):
    """Build the uvicorn.run keyword arguments from environment variables."""
    return {
        "host": environ.get("HOST", "0.0.0.0"),
        "port": int(environ.get("PORT", 8000)),
        "reload": environ.get("RELOAD", "false").strip().lower() in ("1", "true", "yes"),
        "log_level": environ.get("LOG_LEVEL", "info").lower(),
    }

if __name__ == "__main__":
    options = server_options()
    try:
        print(f"Starting CRM API server on {options['host']}:{options['port']}...")
        print(f"API documentation at http://localhost:{options['port']}/docs")
        uvicorn.run(APP, **options)
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
