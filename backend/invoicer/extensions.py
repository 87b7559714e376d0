# Overview: Process-wide handles: database, migrations and remote service clients.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .clients import DispatchClient, IdentityClient

db = SQLAlchemy()
migrate = Migrate()
identity = IdentityClient()
dispatcher = DispatchClient()
