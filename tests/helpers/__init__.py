from .fakes import PagedSource, RecordingScheduler
from .metric_delta import histogram_observes, metric_delta
from .payloads import blast_xml, fake_blastn, fake_makeblastdb, sparql_page, sparql_results, write_executable

__all__ = [
    "PagedSource",
    "RecordingScheduler",
    "blast_xml",
    "fake_blastn",
    "fake_makeblastdb",
    "histogram_observes",
    "metric_delta",
    "sparql_page",
    "sparql_results",
    "write_executable",
]
