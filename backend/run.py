#!/usr/bin/env python3
"""
Run script for the Nuvia collaboration server
"""

import uvicorn
from nuvia.core.config import settings

if __name__ == "__main__":
    # Socket.IO and the HTTP API are served by the same ASGI app
    uvicorn.run(
        "nuvia.main:asgi_app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
