"""PostgreSQL connection pool."""

from typing import Any

import psycopg2
import psycopg2.extensions

from .base import BaseConnectionPool


class PostgresConnectionPool(BaseConnectionPool):
    """
    Pool of psycopg2 connections.

    Connections are handed out in autocommit mode; callers that need a
    transaction switch autocommit off and must restore it before the
    connection goes back to the pool.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        connect_timeout: int = 10,
        application_name: str = "diffcheck",
        **kwargs: Any,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout
        self.application_name = application_name

        super().__init__(**kwargs)

    def _create_connection(self) -> psycopg2.extensions.connection:
        conn = psycopg2.connect(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
            connect_timeout=self.connect_timeout,
            application_name=self.application_name,
        )
        conn.autocommit = True
        return conn

    def _is_connection_healthy(self, conn: psycopg2.extensions.connection) -> bool:
        if conn is None or conn.closed:
            return False

        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            return True
        except psycopg2.Error:
            return False

    def _close_connection(self, conn: psycopg2.extensions.connection) -> None:
        if conn is not None and not conn.closed:
            conn.close()
