# backend/__main__.py
import uvicorn

from config.settings import settings

if __name__ == "__main__":
    uvicorn.run("backend.app:app", host="0.0.0.0", port=settings.PORT)
