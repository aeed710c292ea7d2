# backend/wsgi.py
from branchpos import create_app

app = create_app()
