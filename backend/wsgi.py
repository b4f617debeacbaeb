# backend/wsgi.py
from modaledger import create_app

app = create_app()
