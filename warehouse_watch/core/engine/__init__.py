from .bq_client import BigQueryQueryService, QueryService

__all__ = ["BigQueryQueryService", "QueryService"]
