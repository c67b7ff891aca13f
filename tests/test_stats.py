from sitemirror.crawler.frontier import EnqueueResult, EnqueueStatus
from sitemirror.crawler.stats import StatsCollector
from sitemirror.crawler.types import CrawlStage, DownloadStats


def test_stats_payload():
    stats = StatsCollector()
    stats.record_enqueue_many(
        [
            EnqueueResult(EnqueueStatus.ENQUEUED, "https://site.test/a"),
            EnqueueResult(EnqueueStatus.SKIPPED_EXTERNAL, "https://other.test/"),
        ]
    )
    stats.record_enqueue(EnqueueStatus.ENQUEUED)
    stats.record_page(ok=True, depth=0)
    stats.record_page(ok=True, depth=1)
    stats.record_page(ok=False)
    stats.record_screenshots(2)
    stats.record_error(CrawlStage.SCREENSHOT, "RuntimeError")
    stats.record_error(CrawlStage.FETCH, None)
    stats.record_downloads(DownloadStats(total=3, images=2, failed=1))
    stats.finish()

    payload = stats.to_json()

    assert payload["links_seen"] == 3
    assert payload["enqueue"] == {"enqueued": 2, "skipped_external": 1}
    assert payload["pages_ok"] == 2
    assert payload["pages_error"] == 1
    assert payload["pages_by_depth"] == {"0": 1, "1": 1}
    assert payload["screenshots"] == 2
    assert payload["screenshot_errors"] == 1
    assert payload["errors_by_type"] == {"RuntimeError": 1, "Unknown": 1}
    assert payload["assets"]["failed"] == 1
    assert payload["duration_seconds"] >= 0
