# backend/wsgi.py
from mealplan import create_app

app = create_app()
