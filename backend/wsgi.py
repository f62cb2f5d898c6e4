# backend/wsgi.py
from mintgate import create_app

app = create_app()
