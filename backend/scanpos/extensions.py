# Overview: Flask extension instances for database, migrations, and operation events.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .observability import OperationObserver

db = SQLAlchemy()
migrate = Migrate()
observer = OperationObserver()
