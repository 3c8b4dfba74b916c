# vigora/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Import models so Base.metadata is complete for create_all / Alembic.
from vigora.models import users, token_blacklist, qr_login  # noqa: E402,F401
