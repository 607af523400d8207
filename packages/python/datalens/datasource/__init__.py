# Database access for the query tools. Only the in-memory mock backend ships here.

from .models import (
    ColumnInfo,
    ConnectionStatus,
    Environment,
    QueryResult,
    TableInfo,
    TableSchema,
)
from .mock import DataSourceProvider, MockDataSource
