"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .routes import flows, migrations, planning, schema

app = FastAPI(
    title="Content Migrator API",
    description="Plan and run migrations between two content platform instances",
    version=__version__,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(planning.router, prefix="/api/plan", tags=["plan"])
app.include_router(schema.router, prefix="/api/schema", tags=["schema"])
app.include_router(flows.router, prefix="/api/flows", tags=["flows"])
app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
