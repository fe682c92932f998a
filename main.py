#!/usr/bin/env python3
import os

import uvicorn

from app.app import create_app

# Create the FastAPI app
app = create_app()


if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    reload_enabled = os.getenv("DEV_MODE", "false").lower() == "true"

    uvicorn.run("main:app", host=host, port=port, reload=reload_enabled)
