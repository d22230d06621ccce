#!/usr/bin/env python
"""Run the URMS backup API server."""

import os

import uvicorn


def main():
    """Run the FastAPI application."""
    uvicorn.run(
        "urms.api.app:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
        log_level="info"
    )


if __name__ == "__main__":
    main()
