# backend/wsgi.py
from order_gate import create_app

app = create_app()
