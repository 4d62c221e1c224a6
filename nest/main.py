from prometheus_fastapi_instrumentator import Instrumentator

from nest.core.config import settings
from nest.core.logging import setup_logging
from . import app as nest_app

setup_logging()
app = nest_app
app.title = settings.APP_NAME
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    import uvicorn

    uvicorn.run("nest.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
