# backend/wsgi.py
from fuelpos import create_app

app = create_app()
