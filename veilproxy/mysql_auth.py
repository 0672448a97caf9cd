"""Authenticator that keeps its users in step with a MySQL table."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

import pymysql

from .memory import MemoryAuthenticator
from .stat import AuthConfig, AuthError, register_auth_creator

log = logging.getLogger(__name__)

_UPDATE_TRAFFIC = "UPDATE `users` SET `upload`=`upload`+%s, `download`=`download`+%s WHERE `password`=%s;"
_SELECT_USERS = "SELECT password,quota,download,upload FROM users"


def connect_database(username: str, password: str, host: str, port: int, database: str) -> Any:
    """Open a connection to the MySQL server."""
    try:
        return pymysql.connect(host=host, port=port, user=username, password=password,
                               database=database, charset="utf8", autocommit=True)
    except pymysql.MySQLError as exc:
        raise AuthError("failed to connect to database server") from exc


class MySQLAuthenticator(MemoryAuthenticator):
    """Writes user traffic to MySQL and reloads users within their quota."""

    def __init__(self, config: AuthConfig, connection: Any) -> None:
        super().__init__(config.hashes)
        self._db = connection
        self.update_duration = config.mysql.check_rate
        self._stop_sync = threading.Event()
        self._sync_thread: Optional[threading.Thread] = None

    def sync_once(self) -> None:
        """Push buffered traffic to the table, then reload the user list."""
        for user in self.list_users():
            sent, recv = user.get_and_reset()
            try:
                with self._db.cursor() as cursor:
                    # the client's upload is what the server received
                    cursor.execute(_UPDATE_TRAFFIC, (recv, sent, user.hash))
                self._db.commit()
            except pymysql.MySQLError as exc:
                log.error("failed to update data to user: %s", exc)
        log.info("buffered data has been written into the database")

        try:
            with self._db.cursor() as cursor:
                cursor.execute(_SELECT_USERS)
                rows = list(cursor.fetchall())
        except pymysql.MySQLError as exc:
            log.error("failed to pull data from the database: %s", exc)
            return

        for row in rows:
            try:
                hash_value = row[0].decode("utf-8") if isinstance(row[0], (bytes, bytearray)) else str(row[0])
                quota, download, upload = int(row[1]), int(row[2]), int(row[3])
            except (IndexError, TypeError, ValueError) as exc:
                log.error("failed to obtain data from the query result: %s", exc)
                break
            try:
                if download + upload < quota or quota < 0:
                    self.add_user(hash_value)
                else:
                    self.del_user(hash_value)
            except AuthError:
                pass

    def _run(self) -> None:
        while True:
            self.sync_once()
            if self._stop_sync.wait(self.update_duration):
                log.debug("db daemon exiting...")
                return

    def start(self) -> None:
        """Start synchronising in the background."""
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return
        self._sync_thread = threading.Thread(target=self._run, name="mysql-sync", daemon=True)
        self._sync_thread.start()

    def close(self) -> None:
        self._stop_sync.set()
        thread = self._sync_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        super().close()
        try:
            self._db.close()
        except pymysql.MySQLError as exc:
            log.debug("closing database connection failed: %s", exc)


def new_mysql_auth(config: AuthConfig) -> MySQLAuthenticator:
    """Connect to the configured server and start synchronising."""
    settings = config.mysql
    connection = connect_database(settings.username, settings.password, settings.server_host,
                                  settings.server_port, settings.database)
    auth = MySQLAuthenticator(config, connection)
    auth.start()
    return auth


register_auth_creator("mysql", new_mysql_auth)