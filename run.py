import os

import uvicorn
from dotenv import load_dotenv

load_dotenv(".env")

from app.core.config import settings  # noqa: E402  settings read the loaded .env


def uvicorn_options() -> dict:
    options = {
        "app": "app.main:app",
        "port": settings.PORT,
        "log_level": settings.LOG_LEVEL.lower(),
    }
    if settings.ENVIRONMENT == "production":
        options.update({
            "host": "0.0.0.0",
            "workers": int(os.getenv("WORKERS", "4")),
            "proxy_headers": True,
            "forwarded_allow_ips": "*",
        })
    else:
        options.update({
            "host": "127.0.0.1",
            "reload": True,
        })
    return options


if __name__ == "__main__":
    uvicorn.run(**uvicorn_options())
