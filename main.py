
import asyncio
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from studio.api import catalog, chat, image, ocr
from studio.app import StudioApp
from studio.errors import StudioError
from studio.log import logger, setup_logging


def create_app(studio_app: StudioApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await studio_app.init()
        setup_logging(studio_app.config.log)
        app.state.studio_app = studio_app
        yield
        await studio_app.close()

    app = FastAPI(description="Inference Studio API", title="Inference Studio", lifespan=lifespan)

    app.include_router(catalog.router)
    app.include_router(chat.router)
    app.include_router(image.router)
    app.include_router(ocr.router)

    @app.exception_handler(StudioError)
    async def _(request: Request, exc: StudioError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.get("/")
    async def _():
        return RedirectResponse(url="/docs")

    return app


studio_app = StudioApp()
app = create_app(studio_app)

if __name__ == "__main__":
    asyncio.run(studio_app.load_config())
    uvicorn.run(
        "main:app",
        host=studio_app.config.app.host,
        port=studio_app.config.app.port,
        reload=True,
        log_level="info",
        workers=1,
    )
