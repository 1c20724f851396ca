# backend/wsgi.py
from aquastock import create_app

app = create_app()
