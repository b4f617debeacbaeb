# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
# Batch mode so column changes can be migrated on SQLite
migrate = Migrate(render_as_batch=True)
