# Entry point for `flask --app wsgi` and WSGI servers.

from boutique import create_app

app = create_app()
