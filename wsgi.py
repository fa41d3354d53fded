"""WSGI entry-point for gunicorn deployments."""

import os

from fluzio import create_app

os.environ.setdefault("FLASK_APP", "fluzio:create_app")

app = create_app()

if __name__ == "__main__":
    app.run()
