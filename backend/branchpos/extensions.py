# Overview: Flask extension instances for the order database and its migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Order rows are re-read after every unit of work, so expire loaded state on commit.
db = SQLAlchemy(session_options={"expire_on_commit": True})
migrate = Migrate(compare_type=True)
