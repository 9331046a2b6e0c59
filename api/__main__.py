"""
Development server: python -m api [dev|prod|test]

Production runs behind a WSGI server instead, e.g. gunicorn "api:create_app()".
Session sweeps are not scheduled here; run `flask --app api sweep-sessions`
from cron or any scheduler.
"""
import os
import sys

from . import create_app

app = create_app(sys.argv[1] if len(sys.argv) > 1 else None)

if __name__ == "__main__":
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=app.config.get("DEBUG", False),
    )
