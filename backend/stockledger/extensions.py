# Overview: Flask extension instances for database, migrations, and the read cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.cache import ReadCache

db = SQLAlchemy()
migrate = Migrate()
read_cache = ReadCache()
