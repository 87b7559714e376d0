# backend/wsgi.py
from invoicer import create_app

app = create_app()
