from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def init_db(app):
    """Binds the single storage handle to the app; schema comes from migrations."""
    db.init_app(app)
    migrate.init_app(app, db)

    # Import so the models are registered on db.metadata
    import models  # noqa: F401

    return db
