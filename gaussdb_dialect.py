from sqlglot import exp
from sqlglot.dialects.dialect import build_formatted_time
from sqlglot.dialects.postgres import Postgres
from sqlglot.tokens import TokenType


class GaussDB(Postgres):  # 继承自 PostgreSQL 方言，sqlglot 按类名注册为 "gaussdb"

    class Tokenizer(Postgres.Tokenizer):
        # 保留 PostgreSQL 的原始标识符和引号规则
        IDENTIFIERS = ['"']
        QUOTES = ["'"]

        # 扩展关键字映射
        KEYWORDS = {
            **Postgres.Tokenizer.KEYWORDS,
            "FLOAT8": TokenType.DOUBLE,
            "VARCHAR2": TokenType.VARCHAR,
            "NVARCHAR2": TokenType.NVARCHAR,
            "SERIAL8": TokenType.BIGSERIAL,
            "MINUS": TokenType.EXCEPT,
        }

    class Parser(Postgres.Parser):
        FUNCTIONS = {
            **Postgres.Parser.FUNCTIONS,
            "TO_CHAR": build_formatted_time(exp.TimeToStr, "postgres", default=True),
            "TO_DATE": build_formatted_time(exp.StrToDate, "postgres", default=True),
        }

    class Generator(Postgres.Generator):
        pass


# GaussDB 特有的语法扩展，只做识别不做改写
GAUSSDB_EXTENSION_KEYWORDS = (
    "VARCHAR2",
    "NVARCHAR2",
    "NUMBER",
    "SERIAL8",
    "NEXTVAL",
    "CURRVAL",
    "MINUS",
    "DISTRIBUTE BY",
    "CREATE PROCEDURE",
    "CREATE FUNCTION",
)
