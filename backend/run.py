#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Uses DATABASE_URL from the environment or backend/.env, SQLite by default.
"""
import os

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting consultbook on http://localhost:{port} (docs at /docs)")
    uvicorn.run("consultbook.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
