"""FastAPI business directory admin service.

End users submit requests to add, update or remove a business listing.
Administrators review them here:
- approve with an authoritative value (validated against the field registry)
- confirm new categories, locations and districts before they are created
- reject with a reason, which also deletes any images the request staged

Every approved change is written to the record's audit history.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from bizdir.api.routes import register_routes
from bizdir.db.connection import init_db

tags_metadata = [
    {
        "name": "Requests",
        "description": "Submit, approve and reject business change requests"
    },
    {
        "name": "Records",
        "description": "Approved business records and their images"
    },
    {
        "name": "Fields",
        "description": "The registry of fields a change request may target"
    },
    {
        "name": "Taxonomy",
        "description": "Category, location and district vocabularies"
    }
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title='Business Directory Admin',
    version='1.0.0',
    description='Change-request review for the business directory',
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Register all API routes
register_routes(app)
