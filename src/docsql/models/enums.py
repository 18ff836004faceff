from enum import StrEnum


class DataType(StrEnum):
    INT = "INT"
    BIGINT = "BIGINT"
    DOUBLE = "DOUBLE"
    DATE = "DATE"
    DATETIME = "DATETIME"


class TokenType(StrEnum):
    SPACE = " "
