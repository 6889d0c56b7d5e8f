"""Local development entry point.

Usage:
    python run.py
    flask --app run prune-webhook-events

Loads .env, then builds the app for FLASK_ENV (development by default).
HOST / PORT override the bind address; keep PORT in line with APP_BASE_URL
so checkout redirects land back on this server.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before the config classes read os.environ

from breezy import create_app

app = create_app()

if __name__ == "__main__":
    app.run(
        debug=True,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", 5000)),
    )
