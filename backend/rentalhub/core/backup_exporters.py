"""
Database export and restore strategies used by the backup engine.

The strategy is picked from the SQLAlchemy dialect of the bound engine:
sqlite3 / mysqldump / pg_dump (mysql / psql for restores) when the native
tool is on PATH, otherwise an in-process dump or load so backups keep
working in minimal containers.
"""
import logging
import os
import shutil
import subprocess
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import MetaData, select
from sqlalchemy.engine import Engine
from sqlalchemy.schema import CreateTable

from rentalhub.core.errors import ExternalToolFailure

logger = logging.getLogger(__name__)


def _run_tool(tool: str, command: list[str], env: dict, timeout, action: str, stdin=None, stdout=None):
    logger.debug("Running %s", command[0])
    try:
        completed = subprocess.run(
            command,
            stdin=stdin,
            stdout=stdout if stdout is not None else subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ExternalToolFailure(f"{tool} not found: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise ExternalToolFailure(f"{tool} did not finish within {timeout} seconds") from exc

    if completed.returncode != 0:
        stderr = completed.stderr.decode(errors="replace").strip()
        raise ExternalToolFailure(f"{action} failed with exit code {completed.returncode}: {stderr}")


class Exporter:
    """Writes a SQL dump of `engine` to `target_path`."""

    name = "base"

    def __init__(self, engine: Engine, timeout: float | None = None):
        self.engine = engine
        self.timeout = timeout

    def export(self, target_path: str) -> None:
        raise NotImplementedError


class CommandExporter(Exporter):
    """Runs an external dump tool with stdout redirected into the artifact."""

    tool = ""

    def build_command(self, target_path: str) -> list[str]:
        raise NotImplementedError

    def build_env(self) -> dict:
        return dict(os.environ)

    def export(self, target_path: str) -> None:
        command = self.build_command(target_path)
        with open(target_path, "wb") as out:
            _run_tool(self.tool, command, self.build_env(), self.timeout, "Backup", stdout=out)


class SqliteCliExporter(CommandExporter):
    name = "sqlite3"
    tool = "sqlite3"

    def build_command(self, target_path: str) -> list[str]:
        return [shutil.which(self.tool) or self.tool, self.engine.url.database, ".dump"]


def _mysql_args(url) -> list[str]:
    args = [f"--host={url.host or 'localhost'}", f"--port={url.port or 3306}"]
    if url.username:
        args.append(f"--user={url.username}")
    return args


def _mysql_env(url) -> dict:
    env = dict(os.environ)
    # Keep the password off the process list
    if url.password:
        env["MYSQL_PWD"] = url.password
    return env


def _pg_args(url) -> list[str]:
    args = ["--host", url.host or "localhost", "--port", str(url.port or 5432)]
    if url.username:
        args += ["--username", url.username]
    return args


def _pg_env(url) -> dict:
    env = dict(os.environ)
    if url.password:
        env["PGPASSWORD"] = url.password
    return env


class MysqlDumpExporter(CommandExporter):
    name = "mysqldump"
    tool = "mysqldump"

    def build_command(self, target_path: str) -> list[str]:
        url = self.engine.url
        return [shutil.which(self.tool) or self.tool, *_mysql_args(url), url.database]

    def build_env(self) -> dict:
        return _mysql_env(self.engine.url)


class PgDumpExporter(CommandExporter):
    name = "pg_dump"
    tool = "pg_dump"

    def build_command(self, target_path: str) -> list[str]:
        url = self.engine.url
        # --clean so the dump can be loaded over an existing schema
        command = [shutil.which(self.tool) or self.tool, "--no-owner", "--clean", "--if-exists"]
        return command + _pg_args(url) + [url.database]

    def build_env(self) -> dict:
        return _pg_env(self.engine.url)


class SqliteIterdumpExporter(Exporter):
    """In-process dump through the sqlite3 module."""

    name = "sqlite-iterdump"

    def export(self, target_path: str) -> None:
        raw = self.engine.raw_connection()
        try:
            with open(target_path, "w", encoding="utf-8") as out:
                for line in raw.driver_connection.iterdump():
                    out.write(f"{line}\n")
        finally:
            raw.close()


def _sql_literal(value) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()}'"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"X'{bytes(value).hex()}'"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


class TextualExporter(Exporter):
    """Engine-agnostic emulation: reflected DDL followed by INSERT statements."""

    name = "textual"

    def export(self, target_path: str) -> None:
        metadata = MetaData()
        metadata.reflect(bind=self.engine)
        with self.engine.connect() as conn, open(target_path, "w", encoding="utf-8") as out:
            out.write(f"-- rentalhub textual dump ({self.engine.dialect.name})\n")
            for table in reversed(metadata.sorted_tables):
                out.write(f"DROP TABLE IF EXISTS {table.name};\n")
            for table in metadata.sorted_tables:
                ddl = str(CreateTable(table).compile(self.engine)).strip()
                out.write(f"{ddl};\n")
                columns = [c.name for c in table.columns]
                column_list = ", ".join(columns)
                for row in conn.execute(select(table)):
                    values = ", ".join(_sql_literal(row._mapping[c]) for c in columns)
                    out.write(f"INSERT INTO {table.name} ({column_list}) VALUES ({values});\n")


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------

def _drop_sqlite_schema(engine: Engine) -> None:
    # sqlite dumps carry CREATE TABLE without DROP, so the old schema goes first
    metadata = MetaData()
    metadata.reflect(bind=engine)
    metadata.drop_all(bind=engine)


class Importer:
    """Loads the SQL dump at `source_path` into `engine`, replacing its data."""

    name = "base"

    def __init__(self, engine: Engine, timeout: float | None = None):
        self.engine = engine
        self.timeout = timeout

    def load(self, source_path: str) -> None:
        raise NotImplementedError


class CommandImporter(Importer):
    """Runs an external client with the dump file on stdin."""

    tool = ""

    def build_command(self) -> list[str]:
        raise NotImplementedError

    def build_env(self) -> dict:
        return dict(os.environ)

    def prepare(self) -> None:
        pass

    def load(self, source_path: str) -> None:
        self.prepare()
        with open(source_path, "rb") as source:
            _run_tool(self.tool, self.build_command(), self.build_env(), self.timeout, "Restore", stdin=source)


class SqliteCliImporter(CommandImporter):
    name = "sqlite3"
    tool = "sqlite3"

    def build_command(self) -> list[str]:
        return [shutil.which(self.tool) or self.tool, "-bail", self.engine.url.database]

    def prepare(self) -> None:
        _drop_sqlite_schema(self.engine)


class MysqlImporter(CommandImporter):
    name = "mysql"
    tool = "mysql"

    def build_command(self) -> list[str]:
        url = self.engine.url
        return [shutil.which(self.tool) or self.tool, *_mysql_args(url), url.database]

    def build_env(self) -> dict:
        return _mysql_env(self.engine.url)


class PsqlImporter(CommandImporter):
    name = "psql"
    tool = "psql"

    def build_command(self) -> list[str]:
        url = self.engine.url
        command = [shutil.which(self.tool) or self.tool, "--quiet", "-v", "ON_ERROR_STOP=1"]
        return command + _pg_args(url) + ["--dbname", url.database]

    def build_env(self) -> dict:
        return _pg_env(self.engine.url)


class SqliteScriptImporter(Importer):
    """In-process load through sqlite3's executescript."""

    name = "sqlite-executescript"

    def load(self, source_path: str) -> None:
        with open(source_path, encoding="utf-8") as source:
            script = source.read()
        _drop_sqlite_schema(self.engine)
        raw = self.engine.raw_connection()
        try:
            # Rows are loaded table by table; references are checked again afterwards
            raw.driver_connection.executescript(f"PRAGMA foreign_keys=OFF;\n{script}\nPRAGMA foreign_keys=ON;")
        except Exception as exc:
            raise ExternalToolFailure(f"Restore failed: {exc}") from exc
        finally:
            raw.close()


_NATIVE = {
    "sqlite": SqliteCliExporter,
    "mysql": MysqlDumpExporter,
    "mariadb": MysqlDumpExporter,
    "postgresql": PgDumpExporter,
}

_NATIVE_IMPORTERS = {
    "sqlite": SqliteCliImporter,
    "mysql": MysqlImporter,
    "mariadb": MysqlImporter,
    "postgresql": PsqlImporter,
}


def _is_memory_sqlite(engine: Engine) -> bool:
    return engine.dialect.name == "sqlite" and engine.url.database in (None, "", ":memory:")


def select_exporter(engine: Engine, timeout: float | None = None) -> Exporter:
    dialect = engine.dialect.name
    native = _NATIVE.get(dialect)
    if native is not None and not _is_memory_sqlite(engine) and shutil.which(native.tool):
        return native(engine, timeout)

    if dialect == "sqlite":
        return SqliteIterdumpExporter(engine, timeout)

    logger.warning("No native dump tool for %s on PATH, using textual export", dialect)
    return TextualExporter(engine, timeout)


def select_importer(engine: Engine, timeout: float | None = None) -> Importer:
    dialect = engine.dialect.name
    native = _NATIVE_IMPORTERS.get(dialect)
    if native is not None and not _is_memory_sqlite(engine) and shutil.which(native.tool):
        return native(engine, timeout)

    if dialect == "sqlite":
        return SqliteScriptImporter(engine, timeout)

    raise ExternalToolFailure(f"No restore tool for {dialect} found on PATH")
