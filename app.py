"""
=============================================================================
FATIGUE SCREENING SERVICE — APPLICATION ENTRY POINT (app.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This is the "front door" of the server. When you run "python app.py", the computer
starts a web server that the screening frontend talks to. The server:

  1. Records each test: the browser (or a local webcam) sends one still every
     ~100 ms, and we measure movement, blinks and pupil response as they arrive.
  2. Scores each finished test (simple reaction, dot grid, flash) and combines
     them into one NeuroScore once every required test is done.
  3. Optionally asks a vision model (OpenAI / Azure OpenAI) for a second opinion
     on a batch of frames.

The actual URL handlers are defined in routes.py.

HOW TO RUN:
-----------
  - From project root:  python app.py
  - By default the app is at:  http://localhost:5000

CONFIGURATION:
--------------
  - Settings (API keys, ports, sampling, thresholds) come from the .env file and config.py.
  - Never put real API keys in the code; use environment variables.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before anything else)
# ---------------------------------------------------------------------------
# The .env file holds secrets and settings (e.g. API keys). We load it from
# the same folder as this file so that config.py can read those values.
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# ---------------------------------------------------------------------------
# Step 2: Import the web framework and our own modules
# ---------------------------------------------------------------------------
import logging

from flask import Flask
from flask_cors import CORS
from flask_compress import Compress

from routes import register_routes
from utils.analysis_thresholds import load_thresholds
import config

# ---------------------------------------------------------------------------
# Step 3: Warn the user if important settings are missing
# ---------------------------------------------------------------------------
# Prints a friendly warning (e.g. "OPENAI_API_KEY is not set"). Does NOT put
# any secrets in the code.
config.warn_missing_config()


def create_app() -> Flask:
    """
    Create and configure the Flask application (the web server).

    What it does:
      - Enables CORS so the browser frontend can call the API from another origin.
      - Enables compression for larger responses (results, thresholds).
      - Loads the analysis thresholds (URL, then JSON file, then defaults).
      - Registers all URL routes from routes.py.

    Returns:
        The configured Flask application.
    """
    app = Flask(__name__)

    # Allow the browser to call our API from another origin.
    # In production you would restrict this to specific domains.
    CORS(app, resources={r"/*": {"origins": "*"}})

    Compress(app)

    load_thresholds()

    register_routes(app)

    return app


# ---------------------------------------------------------------------------
# Create the one global Flask application
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# Run the server when this file is executed directly (e.g. "python app.py")
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    """
    - If FLASK_DEBUG is true: Flask's development server (auto-reload, debugger).
    - Otherwise: Waitress with 6 threads, suitable for local or light production use.

    Host and port come from config (default: 0.0.0.0:5000).
    """
    logging.basicConfig(
        level=logging.DEBUG if config.FLASK_DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.FLASK_DEBUG:
        app.run(
            host=config.FLASK_HOST,
            port=config.FLASK_PORT,
            debug=True
        )
    else:
        import waitress
        waitress.serve(app, host=config.FLASK_HOST, port=config.FLASK_PORT, threads=6)
