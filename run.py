"""Local development server for the AltLeads API.

Usage:
    python run.py
    FLASK_ENV=development PORT=5001 python run.py

Reads .env first, so SECRET_KEY, DATABASE_URL and the token secrets can
live there. Seed an admin with ``flask seed-admin`` before logging in.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before the config classes read os.environ

from altleads import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    app.run(
        debug=app.config.get("DEBUG", False),
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", 5001)),
    )
