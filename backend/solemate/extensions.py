# Overview: Shared SQLAlchemy, Alembic and mail extension objects, bound to the app in create_app().

# backend/solemate/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_mail import Mail

db = SQLAlchemy()
# Migration scripts live in backend/migrations/versions.
migrate = Migrate(directory="migrations")
mail = Mail()
