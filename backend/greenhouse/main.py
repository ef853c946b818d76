import logging

import uvicorn

from greenhouse.config import get_settings
from greenhouse.factory import create_app

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run("greenhouse.main:app", host=settings.api_host, port=settings.port)
