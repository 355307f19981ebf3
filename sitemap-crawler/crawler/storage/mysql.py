"""
Persistence sink for finished crawls.
A crawl never depends on this module succeeding: persist_report() logs and swallows
every store failure.
"""

import json
import uuid
from datetime import datetime
from typing import Dict, Optional

import pymysql

from crawler.core import DB_CONFIG, logger
from crawler.models import CrawlReport

SITEMAP_TYPES = ("xml", "html", "visual")

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS sitemaps (
        id CHAR(36) PRIMARY KEY,
        start_url VARCHAR(2048) NOT NULL,
        base_url VARCHAR(512) NOT NULL,
        sitemap_type VARCHAR(16) NOT NULL,
        content LONGTEXT,
        pages JSON,
        stats JSON,
        settings JSON,
        status VARCHAR(16) NOT NULL,
        size_bytes INT NOT NULL DEFAULT 0,
        duration_ms INT NOT NULL DEFAULT 0,
        created_at DATETIME NOT NULL,
        INDEX idx_sitemaps_created (created_at)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
"""

_JSON_COLUMNS = ("pages", "stats", "settings")


def build_record(report: CrawlReport, sitemap_type: str, content: str) -> Dict:
    """Maps a CrawlReport (plus the generated artifact) to one persisted row."""
    if sitemap_type not in SITEMAP_TYPES:
        raise ValueError(f"Unknown sitemap type: {sitemap_type}")

    pages = []
    for o in report.outcomes:
        pages.append({
            "url": o.url,
            "normalized_url": o.normalized_url,
            "depth": o.depth,
            "method": o.method.value if o.method else None,
            "success": o.success,
            "status_code": o.status_code,
            "load_time_ms": o.duration_ms,
            "error": o.error.value if o.error else None,
            "metadata": o.metadata.to_dict(),
        })

    successful = [o for o in report.outcomes if o.success]
    stats = {
        "total_pages": report.total,
        "successful_pages": report.success_count,
        "failed_pages": report.fail_count,
        "skipped_pages": report.skipped_count,
        "average_load_time_ms": report.average_load_time_ms,
        "max_depth_reached": report.max_depth_reached,
        "method_counts": report.method_counts,
        "pages_by_depth": {str(k): v for k, v in report.pages_by_depth.items()},
        "pages_without_title": sum(1 for o in successful if not o.metadata.title),
        "pages_without_description": sum(1 for o in successful if not o.metadata.description),
    }

    content = content or ""
    return {
        "start_url": report.start_url,
        "base_url": report.base_origin,
        "sitemap_type": sitemap_type,
        "content": content,
        "pages": pages,
        "stats": stats,
        "settings": report.budget.to_dict() if report.budget else {},
        "status": report.status,
        "size_bytes": len(content.encode("utf-8")),
        "duration_ms": report.duration_ms,
        "created_at": datetime.now(),
    }


def connect(config: Optional[Dict] = None):
    """Opens a pymysql connection from DB_CONFIG."""
    return pymysql.connect(**(config or DB_CONFIG))


class MySQLSitemapStore:
    """
    MySQL implementation of the crawl record store.
    pages / stats / settings are stored as JSON columns.
    """

    def __init__(self, connection):
        self._conn = connection

    def ensure_schema(self) -> None:
        with self._conn.cursor() as cursor:
            cursor.execute(SCHEMA_SQL)
            self._conn.commit()

    def save(self, record: Dict) -> str:
        record_id = str(uuid.uuid4())
        sql = """
            INSERT INTO sitemaps (
                id, start_url, base_url, sitemap_type, content, pages, stats,
                settings, status, size_bytes, duration_ms, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (
                record_id, record["start_url"], record["base_url"], record["sitemap_type"],
                record["content"], json.dumps(record["pages"]), json.dumps(record["stats"]),
                json.dumps(record["settings"]), record["status"], record["size_bytes"],
                record["duration_ms"], record["created_at"],
            ))
            self._conn.commit()
        logger.info(f"[DB] Saved {record['sitemap_type']} sitemap {record_id} for {record['start_url']}")
        return record_id

    def get(self, record_id: str) -> Optional[Dict]:
        with self._conn.cursor(pymysql.cursors.DictCursor) as cursor:
            cursor.execute("SELECT * FROM sitemaps WHERE id = %s", (record_id,))
            row = cursor.fetchone()
        if not row:
            return None
        for col in _JSON_COLUMNS:
            if isinstance(row.get(col), (str, bytes)):
                row[col] = json.loads(row[col])
        return row

    def close(self) -> None:
        self._conn.close()


def persist_report(store: Optional[MySQLSitemapStore], report: CrawlReport,
                   sitemap_type: str, content: str) -> Optional[str]:
    """Saves the crawl record. Returns its id, or None when nothing could be stored."""
    if store is None:
        return None
    try:
        return store.save(build_record(report, sitemap_type, content))
    except Exception as e:
        logger.error(f"[DB] Failed to persist {sitemap_type} sitemap for {report.start_url}: {e}")
        return None
