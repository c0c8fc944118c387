# backend/wsgi.py
from solemate import create_app

app = create_app()
