# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def configure_sqlite_transactions(engine) -> None:
    """
    Let SQLAlchemy own BEGIN on SQLite so SAVEPOINTs behave.

    pysqlite defers BEGIN until the first DML statement, which breaks
    session.begin_nested(); side effects run inside savepoints.
    """
    from sqlalchemy import event

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
