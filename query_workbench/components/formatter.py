"""SQL pretty-printing backed by sqlparse"""
import sqlparse


class SqlparseFormatter:
    """Reindents statements and upper-cases keywords"""

    def __init__(self, keyword_case: str = "upper"):
        self.keyword_case = keyword_case

    def format(self, sql: str) -> str:
        return sqlparse.format(sql, reindent=True, keyword_case=self.keyword_case)
