from crawler.storage.mysql import MySQLSitemapStore, build_record, connect, persist_report
