"""WSGI entrypoint for the recipe sharing API.

Deployments serve ``app`` through Gunicorn with a threaded worker class so a
slow upload only holds its own request. Local development can use
``flask --app main run``.
"""

from recipeshare import create_app

app = create_app()


__all__ = ["app"]
