#!/usr/bin/env python3
"""
Run script for the CTPGA Manager API.
This script launches the FastAPI server with every router mounted.
"""
import os
import sys
import traceback

import uvicorn

if __name__ == "__main__":
    try:
        port = int(os.getenv("PORT", 8000))

        print("Starting CTPGA Manager API server...")
        print(f"Access the API at http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        uvicorn.run(
            "ctpga_manager.main:app",
            host="0.0.0.0",
            port=port,
            reload=True,
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
