"""Ingestion from the upstream SPARQL source."""

from .harvester import Harvester
from .scheduler import Scheduler
from .sparql import SparqlSource, parse_sparql_results, render_query

__all__ = ["Harvester", "Scheduler", "SparqlSource", "parse_sparql_results", "render_query"]
