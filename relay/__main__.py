import uvicorn

from .settings import settings

uvicorn.run("relay.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
