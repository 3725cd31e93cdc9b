#!/usr/bin/env python3
"""
Analytics server launcher script.

Starts uvicorn on the capitalplan FastAPI app.
"""

import os


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "capitalplan.api:app",
        host=os.environ.get("CAPITALPLAN_HOST", "127.0.0.1"),
        port=int(os.environ.get("CAPITALPLAN_PORT", "8000")),
        reload=True,
        reload_dirs=[os.path.dirname(os.path.abspath(__file__))],
    )
