import uvicorn
from storycraft.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "storycraft.main:app",
        host="localhost",
        port=settings.SERVER_PORT,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower(),
    )
