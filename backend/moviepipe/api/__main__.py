"""API server entry point for python -m moviepipe.api"""
import uvicorn
from moviepipe.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "moviepipe.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
