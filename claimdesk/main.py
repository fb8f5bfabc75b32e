"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimdesk import __version__
from claimdesk.api.endpoints import router
from claimdesk.config import get_settings
from claimdesk.utils.logging import LogConfig, setup_logging

setup_logging(LogConfig(level=get_settings().log_level))

# Create FastAPI application
app = FastAPI(
    title="Claimdesk",
    description=(
        "A claims review assistant for medical billing staff. The model looks up "
        "claims on its own and proposes actions, appeal letters and status changes "
        "that only take effect once a human approves them."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Chat",
            "description": "Stream conversational turns as Server-Sent Events.",
        },
        {
            "name": "Decisions",
            "description": "Approve or reject the tool calls the assistant proposed.",
        },
        {
            "name": "Tools",
            "description": "Tools available to the assistant.",
        },
        {
            "name": "Claims",
            "description": "Claim records the assistant works against.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("claimdesk.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
