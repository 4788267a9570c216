from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from storyweaver.config import Settings, load_settings
from storyweaver.llm import LLM
from storyweaver.routes import router
from storyweaver.routes.stories import MISSING_FIELDS_ERROR, failure


def create_app(settings: Settings | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = settings or load_settings()

    app = FastAPI(title="StoryWeaver")
    app.state.settings = resolved
    app.state.llm = llm or resolved.create_llm()
    app.include_router(router, prefix="/api")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return failure(400, MISSING_FIELDS_ERROR)

    return app


# Default app instance for uvicorn (configured from the environment)
app = create_app()
