from fastapi import FastAPI

from .fields import router as fields_router
from .records import router as records_router
from .requests import router as requests_router
from .taxonomy import router as taxonomy_router


def register_routes(app: FastAPI):
    app.include_router(requests_router, prefix="/v1")
    app.include_router(records_router, prefix="/v1")
    app.include_router(fields_router, prefix="/v1")
    app.include_router(taxonomy_router, prefix="/v1")
