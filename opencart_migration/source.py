import datetime
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

import pymysql
import pymysql.cursors
from bson import Binary

logger = logging.getLogger(__name__)

FETCH_SIZE = 1000


def convert_value(value):
    """MySQL column value -> BSON-compatible value."""
    if value is None:
        return None

    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()

    if isinstance(value, (bytes, bytearray, memoryview)):
        return Binary(bytes(value))

    if isinstance(value, Decimal):
        return float(value)

    return value


def to_datetime(value, default=None):
    """OpenCart dates, including '0000-00-00 00:00:00', as datetime or default."""
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value and not value.startswith("0000-00-00"):
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                return datetime.datetime.strptime(value, fmt)
            except ValueError:
                continue
    return default


def to_bool(value):
    return value == 1 or value is True or value == "1"


def group_by(rows, key):
    grouped = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(row)
    return grouped


def connect_mysql(settings):
    conn = pymysql.connect(
        charset='utf8mb4',
        cursorclass=pymysql.cursors.DictCursor,
        **settings.mysql_config
    )
    logger.info(f"Connected to MySQL: {settings.MYSQL_HOST}:{settings.MYSQL_PORT}/{settings.MYSQL_DATABASE}")
    return conn


class SourceStore:
    """Read-only access to the OpenCart schema."""

    def __init__(self, connection):
        self.connection = connection

    def fetch_data(self, query, params=None):
        try:
            with self.connection.cursor() as cur:
                cur.execute(query, params)
                while True:
                    rows = cur.fetchmany(FETCH_SIZE)
                    if not rows:
                        break
                    for row in rows:
                        yield {col: convert_value(val) for col, val in row.items()}
        except pymysql.MySQLError as e:
            logger.error(f"Query failed: {query} - {e}")
            raise

    def fetch_all(self, query, params=None):
        return list(self.fetch_data(query, params))

    def count(self, table):
        rows = self.fetch_all(f"SELECT COUNT(*) AS count FROM `{table}`")
        return int(rows[0]["count"]) if rows else 0

    def max_value(self, table, column):
        rows = self.fetch_all(f"SELECT MAX(`{column}`) AS max_value FROM `{table}`")
        return rows[0]["max_value"] if rows else None

    def list_tables(self):
        return [next(iter(row.values())) for row in self.fetch_all("SHOW TABLES")]

    def close(self):
        self.connection.close()
