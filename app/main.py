from __future__ import annotations

from fastapi import FastAPI


def create_app() -> FastAPI:
    app = FastAPI(title="Time Lens API", version="0.2.0")

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    from app.routes import convert, settings  # noqa: WPS433

    app.include_router(convert.router)
    app.include_router(settings.router)
    return app


app = create_app()
