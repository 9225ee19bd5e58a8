"""Serve the API with uvicorn; reloads on code changes unless AGP_ENV=production."""

import os
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from agp.config import get_settings  # noqa: E402

if __name__ == "__main__":
    uvicorn.run(
        "backend.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=get_settings().port,
        reload=os.environ.get("AGP_ENV", "development") != "production",
    )
