# extensions.py
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# The presentation layer resolves the acting user through Flask-Login.
login_manager = LoginManager()

migrate = Migrate()
